"""Story graph arena — every authored node in one map, loaded once.

The story is several per-character DialogueGraph files (listed in
presets/story.json) merged into a single node map keyed by node_id. Node
ids are unique across the whole story; each node remembers which graph it
came from, and each graph keeps its own start node.

Referential integrity is checked offline by validate_story(). At runtime a
dangling next_node_id is not an error: the traversal engine asks
fallback_candidates() for a deterministic recovery target instead.

Sentinel targets (e.g. "TRAVEL_TO_HUB") are intentional dead-ends resolved
by an external router; they are never reported as dangling.
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path

from pydantic import BaseModel

from terminus.models import (
    PATTERNS,
    DialogueGraph,
    DialogueNode,
    StateChange,
    StateCondition,
    StoryManifest,
)

logger = logging.getLogger(__name__)

HUB_TAG = "hub"


class GraphError(ValueError):
    """Raised at load time for structural defects (duplicate ids, bad start)."""


class GraphIssue(BaseModel):
    level: str  # "error" | "warning"
    node_id: str
    message: str


class StoryGraph:
    def __init__(
        self,
        graphs: list[DialogueGraph],
        start_node_id: str,
        sentinels: list[str] | None = None,
    ) -> None:
        self.nodes: dict[str, DialogueNode] = {}
        self.graph_keys: dict[str, str] = {}
        self.graph_starts: dict[str, str] = {}
        for graph in graphs:
            if graph.key in self.graph_starts:
                raise GraphError(f"Duplicate graph key {graph.key!r}")
            ids = {n.node_id for n in graph.nodes}
            if graph.start_node_id not in ids:
                raise GraphError(
                    f"Graph {graph.key!r} start node {graph.start_node_id!r} is not in the graph"
                )
            self.graph_starts[graph.key] = graph.start_node_id
            for node in graph.nodes:
                if node.node_id in self.nodes:
                    raise GraphError(
                        f"Duplicate node id {node.node_id!r} in graphs "
                        f"{self.graph_keys[node.node_id]!r} and {graph.key!r}"
                    )
                self.nodes[node.node_id] = node
                self.graph_keys[node.node_id] = graph.key
        if start_node_id not in self.nodes:
            raise GraphError(f"Story start node {start_node_id!r} is not in any graph")
        self.start_node_id = start_node_id
        self.sentinels = frozenset(sentinels or [])

    def get(self, node_id: str) -> DialogueNode | None:
        return self.nodes.get(node_id)

    def is_sentinel(self, node_id: str) -> bool:
        return node_id in self.sentinels

    @property
    def start_node(self) -> DialogueNode:
        return self.nodes[self.start_node_id]

    def fallback_candidates(self, source: DialogueNode, exclude: str = "") -> list[DialogueNode]:
        """Recovery targets for a transition out of `source`, best first.

        Order: the start node of the source's graph, then hub-tagged nodes in
        the source's character namespace, then every other node in that
        namespace in declaration order. `exclude` (the failed target) is
        never returned. The caller applies gating and, if nothing passes,
        uses the story start.
        """
        namespace = source.namespace
        ordered: list[DialogueNode] = []
        graph_key = self.graph_keys.get(source.node_id)
        if graph_key is not None:
            ordered.append(self.nodes[self.graph_starts[graph_key]])
        in_namespace = [n for n in self.nodes.values() if n.namespace == namespace]
        ordered.extend(n for n in in_namespace if HUB_TAG in n.tags)
        ordered.extend(in_namespace)

        seen: set[str] = set()
        result: list[DialogueNode] = []
        for node in ordered:
            if node.node_id in seen or node.node_id == exclude:
                continue
            seen.add(node.node_id)
            result.append(node)
        return result


def load_story(presets_dir: Path) -> StoryGraph:
    """Load presets/story.json and every graph file it lists, in order."""
    manifest = StoryManifest.model_validate_json((presets_dir / "story.json").read_text())
    graphs = []
    for name in manifest.graphs:
        path = presets_dir / "graphs" / f"{name}.json"
        graphs.append(DialogueGraph.model_validate_json(path.read_text()))
    story = StoryGraph(graphs, manifest.start_node_id, manifest.sentinels)
    logger.debug("Loaded story: %d graphs, %d nodes", len(graphs), len(story.nodes))
    return story


# ── Offline validation ───────────────────────────────────


def _reachable(story: StoryGraph) -> set[str]:
    roots = [story.start_node_id, *story.graph_starts.values()]
    seen: set[str] = set()
    queue = deque(roots)
    while queue:
        node_id = queue.popleft()
        if node_id in seen or node_id not in story.nodes:
            continue
        seen.add(node_id)
        for choice in story.nodes[node_id].choices:
            queue.append(choice.next_node_id)
    return seen


def _implies(required: StateCondition, guard: StateCondition | None) -> bool:
    """Does `guard` holding imply `required`'s trust and global-flag parts?"""
    if guard is None:
        return False
    if required.trust and required.trust.min is not None:
        if not guard.trust or guard.trust.min is None or guard.trust.min < required.trust.min:
            return False
    if required.has_global_flags:
        if not set(required.has_global_flags) <= set(guard.has_global_flags or []):
            return False
    return True


def _grants(required: StateCondition, changes: list[StateChange]) -> bool:
    """Do `changes` add every global flag `required` asks for (flag-only gates)?"""
    if not required.has_global_flags or required.trust:
        return False
    added: set[str] = set()
    for change in changes:
        added |= set(change.add_global_flags or [])
    return set(required.has_global_flags) <= added


def validate_story(story: StoryGraph) -> list[GraphIssue]:
    """Report authoring defects. Errors break traversal; warnings are advisory."""
    issues: list[GraphIssue] = []

    for node in story.nodes.values():
        if not node.content:
            issues.append(GraphIssue(level="error", node_id=node.node_id, message="Node has no content"))
        for choice in node.choices:
            target = choice.next_node_id
            if target not in story.nodes and not story.is_sentinel(target):
                issues.append(GraphIssue(
                    level="error", node_id=node.node_id,
                    message=f"Choice {choice.choice_id!r} targets missing node {target!r}",
                ))
            if choice.pattern is not None and choice.pattern not in PATTERNS:
                issues.append(GraphIssue(
                    level="error", node_id=node.node_id,
                    message=f"Choice {choice.choice_id!r} has unknown pattern {choice.pattern!r}",
                ))

    reachable = _reachable(story)
    for node_id in story.nodes:
        if node_id not in reachable:
            issues.append(GraphIssue(level="warning", node_id=node_id, message="Node is unreachable"))

    for node in story.nodes.values():
        if node.required_state is None:
            continue
        for source in story.nodes.values():
            for choice in source.choices:
                if choice.next_node_id != node.node_id:
                    continue
                effects = list(source.on_enter)
                if choice.consequence is not None:
                    effects.append(choice.consequence)
                if (
                    _implies(node.required_state, choice.visible_condition)
                    or _implies(node.required_state, source.required_state)
                    or _grants(node.required_state, effects)
                ):
                    continue
                issues.append(GraphIssue(
                    level="warning", node_id=node.node_id,
                    message=(
                        f"required_state not guarded by {source.node_id}/{choice.choice_id}; "
                        "runtime will fall back if the gate fails"
                    ),
                ))

    return issues
