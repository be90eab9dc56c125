"""Evidence store — append-only, retention-bounded demonstration log.

One store per player, persisted as a single JSON blob under the key
"skill_tracker_<user_id>" through a KeyValueStore collaborator.

Retention (checked on every append):
  count ≤ max_demonstrations               → keep everything
  otherwise, entries inside the recency window are kept first; older
  entries fill whatever room is left, newest of them first. If recent
  entries alone exceed the cap, only the newest cap-worth survive.

Size guard (checked on every save):
  serialized length > max_storage_chars    → aggressive cleanup first
  write fails                              → aggressive cleanup, retry once
  retry fails                              → PersistenceFailure returned

Aggressive cleanup keeps the last emergency_limit entries and truncates
justifications longer than justification_max_chars. Milestones are never
trimmed.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from terminus.models import PersistenceFailure, SkillDemonstration, SkillMilestone
from terminus.storage.kv import KeyValueStore

logger = logging.getLogger(__name__)

KEY_PREFIX = "skill_tracker_"

MILESTONE_LABELS = {
    1: "Journey Start",
    10: "Early Exploration",
    20: "Mid Journey",
    30: "Late Journey",
}

FAILURE_ALERT_THRESHOLD = 3


class CorruptPersistedState(ValueError):
    """A persisted blob could not be parsed back into a store."""


class RetentionPolicy(BaseModel):
    max_demonstrations: int = 500
    recency_window_days: int = 30
    max_storage_chars: int = 4_000_000
    emergency_limit: int = 100
    justification_max_chars: int = 200

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "RetentionPolicy":
        return cls(**config.get("retention", {}))


class EvidenceLog(BaseModel):
    """The persisted shape of one player's evidence."""

    user_id: str
    demonstrations: list[SkillDemonstration] = Field(default_factory=list)
    milestones: list[SkillMilestone] = Field(default_factory=list)
    journey_started: datetime | None = None


def is_milestone(total_choices: int) -> bool:
    return total_choices == 1 or (total_choices > 0 and total_choices % 10 == 0)


def milestone_label(total_choices: int) -> str:
    return MILESTONE_LABELS.get(total_choices, f"Choice {total_choices}")


def trim_demonstrations(
    demonstrations: list[SkillDemonstration],
    policy: RetentionPolicy,
    now: datetime,
) -> list[SkillDemonstration]:
    """Apply the recency-preserving cap. Returns a new list in log order."""
    cap = policy.max_demonstrations
    if len(demonstrations) <= cap:
        return list(demonstrations)

    cutoff = now - timedelta(days=policy.recency_window_days)
    recent = [i for i, d in enumerate(demonstrations) if d.timestamp >= cutoff]
    older = [i for i, d in enumerate(demonstrations) if d.timestamp < cutoff]

    if len(recent) >= cap:
        keep = set(recent[-cap:])
    else:
        room = cap - len(recent)
        keep = set(recent) | set(older[-room:] if room else [])

    return [d for i, d in enumerate(demonstrations) if i in keep]


class EvidenceStore:
    def __init__(
        self,
        user_id: str,
        kv: KeyValueStore,
        policy: RetentionPolicy | None = None,
    ) -> None:
        self.user_id = user_id
        self.kv = kv
        self.policy = policy or RetentionPolicy()
        self.demonstrations: list[SkillDemonstration] = []
        self.milestones: list[SkillMilestone] = []
        self.journey_started: datetime | None = None
        self.consecutive_failures = 0

    @property
    def key(self) -> str:
        return f"{KEY_PREFIX}{self.user_id}"

    # ── Writing ──────────────────────────────────────────

    def append(
        self, demonstrations: list[SkillDemonstration], now: datetime | None = None
    ) -> None:
        """Append in order, then enforce the retention cap."""
        if not demonstrations:
            return
        now = now or datetime.now(timezone.utc)
        if self.journey_started is None:
            self.journey_started = demonstrations[0].timestamp
        self.demonstrations.extend(demonstrations)
        if len(self.demonstrations) > self.policy.max_demonstrations:
            before = len(self.demonstrations)
            self.demonstrations = trim_demonstrations(self.demonstrations, self.policy, now)
            logger.info(
                "Trimmed evidence for %s: %d → %d demonstrations",
                self.user_id, before, len(self.demonstrations),
            )

    def record_milestone(
        self, total_choices: int, now: datetime | None = None
    ) -> SkillMilestone | None:
        """Snapshot the log at choice-count checkpoints (1st, then every 10th)."""
        if not is_milestone(total_choices):
            return None
        milestone = SkillMilestone(
            checkpoint=milestone_label(total_choices),
            total_choices=total_choices,
            demonstration_count=len(self.demonstrations),
            timestamp=now or datetime.now(timezone.utc),
        )
        self.milestones.append(milestone)
        return milestone

    def clear(self) -> None:
        self.demonstrations = []
        self.milestones = []
        self.journey_started = None

    def aggressive_cleanup(self) -> None:
        limit = self.policy.emergency_limit
        max_chars = self.policy.justification_max_chars
        kept = self.demonstrations[-limit:] if limit else []
        cleaned = []
        for demo in kept:
            if len(demo.justification) > max_chars:
                demo = demo.model_copy(
                    update={"justification": demo.justification[:max_chars] + "..."}
                )
            cleaned.append(demo)
        logger.info(
            "Aggressive cleanup for %s: %d → %d demonstrations",
            self.user_id, len(self.demonstrations), len(cleaned),
        )
        self.demonstrations = cleaned

    # ── Reading ──────────────────────────────────────────

    @property
    def total(self) -> int:
        return len(self.demonstrations)

    def count_for(self, skill: str) -> int:
        return sum(1 for d in self.demonstrations if skill in d.skills)

    def skill_counts(self) -> dict[str, int]:
        """Demonstration count per skill tag, in first-seen order."""
        counts: dict[str, int] = {}
        for demo in self.demonstrations:
            for skill in demo.skills:
                counts[skill] = counts.get(skill, 0) + 1
        return counts

    def by_skill(self) -> dict[str, list[SkillDemonstration]]:
        grouped: dict[str, list[SkillDemonstration]] = {}
        for demo in self.demonstrations:
            for skill in demo.skills:
                grouped.setdefault(skill, []).append(demo)
        return grouped

    def recent(self, limit: int = 10) -> list[SkillDemonstration]:
        """Newest first."""
        return list(reversed(self.demonstrations[-limit:])) if limit > 0 else []

    # ── Persistence ──────────────────────────────────────

    def serialize(self) -> str:
        return EvidenceLog(
            user_id=self.user_id,
            demonstrations=self.demonstrations,
            milestones=self.milestones,
            journey_started=self.journey_started,
        ).model_dump_json()

    @staticmethod
    def deserialize(blob: str) -> EvidenceLog:
        try:
            return EvidenceLog.model_validate_json(blob)
        except ValidationError as e:
            raise CorruptPersistedState(f"Unreadable evidence log: {e}") from e

    @classmethod
    def load(
        cls,
        user_id: str,
        kv: KeyValueStore,
        policy: RetentionPolicy | None = None,
    ) -> "EvidenceStore":
        """Load from the collaborator; missing or corrupt blobs start empty."""
        store = cls(user_id, kv, policy)
        blob = kv.load(store.key)
        if blob is None:
            return store
        try:
            log = cls.deserialize(blob)
        except CorruptPersistedState as e:
            logger.warning("Discarding evidence for %s: %s", user_id, e)
            return store
        store.demonstrations = log.demonstrations
        store.milestones = log.milestones
        store.journey_started = log.journey_started
        return store

    def save(self) -> PersistenceFailure | None:
        """Write the log. Returns a PersistenceFailure if even the retry failed."""
        blob = self.serialize()
        if len(blob) > self.policy.max_storage_chars:
            logger.info(
                "Evidence for %s is %d chars (limit %d)",
                self.user_id, len(blob), self.policy.max_storage_chars,
            )
            self.aggressive_cleanup()
            blob = self.serialize()

        if self.kv.save(self.key, blob):
            self.consecutive_failures = 0
            return None

        logger.warning("Save failed for %s, cleaning up and retrying once", self.key)
        self.aggressive_cleanup()
        blob = self.serialize()
        if self.kv.save(self.key, blob):
            self.consecutive_failures = 0
            return None

        self.consecutive_failures += 1
        logger.error("Could not persist %s after cleanup", self.key)
        if self.consecutive_failures >= FAILURE_ALERT_THRESHOLD:
            logger.error(
                "%d consecutive save failures for %s (%d demonstrations, %d chars)",
                self.consecutive_failures, self.key, self.total, len(blob),
            )
        return PersistenceFailure(
            key=self.key,
            message="Skill evidence could not be saved; progress is kept for this session only",
            consecutive_failures=self.consecutive_failures,
            size=len(blob),
        )
