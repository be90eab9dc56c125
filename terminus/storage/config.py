"""Global engine configuration (retention, matching, relationships, sync, sessions, templates)."""

import json
from pathlib import Path
from typing import Any

from .core import data_dir

DEFAULT_JUSTIFICATION_TEMPLATE = (
    'Chose "{{{choice}}}" during {{{scene}}}, showing a {{pattern}} approach'
    "{{#if arc}} in the {{arc}} arc{{/if}}"
    "{{#if relationship}} ({{relationship}}){{/if}}. "
    "Skills in play: {{{skills}}}. [{{stage}}]"
)

DEFAULT_CAREER_EVIDENCE_TEMPLATE = (
    "Demonstrated {{skill}} {{count}} time{{#if plural}}s{{/if}}, "
    'most recently by choosing "{{{choice}}}" ({{{scene}}})'
)

_CONFIG_DEFAULTS: dict[str, Any] = {
    "retention": {
        "max_demonstrations": 500,
        "recency_window_days": 30,
        "max_storage_chars": 4_000_000,
        "emergency_limit": 100,
        "justification_max_chars": 200,
    },
    "matching": {
        "skill_increment": 0.03,
        "missing_skill_default": 0.5,
        "near_ready_gap": 0.10,
        "developing_gap": 0.20,
        "top_n": 6,
    },
    "relationships": {
        "min_trust": 0,
        "max_trust": 10,
    },
    "sync": {
        "skill_summary_every": 3,
    },
    "sessions": {
        "max_open": 256,
    },
    "templates": {
        "justification": DEFAULT_JUSTIFICATION_TEMPLATE,
        "career_evidence": DEFAULT_CAREER_EVIDENCE_TEMPLATE,
    },
}


def _config_path() -> Path:
    return data_dir() / "config.json"


def _defaults() -> dict[str, Any]:
    return json.loads(json.dumps(_CONFIG_DEFAULTS))


def _merge(config: dict[str, Any], fields: dict[str, Any]) -> None:
    """Merge known sections key-by-key. Unknown sections and keys are ignored."""
    for section, vals in fields.items():
        if section not in config or not isinstance(vals, dict):
            continue
        for key, value in vals.items():
            if key in config[section]:
                config[section][key] = value


def get_config() -> dict[str, Any]:
    """Read config, returning defaults merged with stored values."""
    config = _defaults()
    path = _config_path()
    if path.is_file():
        stored = json.loads(path.read_text())
        # Migrate: flat retention keys from early builds
        if "max_demonstrations" in stored:
            stored.setdefault("retention", {})["max_demonstrations"] = stored.pop(
                "max_demonstrations"
            )
        _merge(config, stored)
    return config


def update_config(fields: dict[str, Any]) -> dict[str, Any]:
    """Merge fields into config and persist. Returns full config."""
    config = get_config()
    _merge(config, fields)
    _config_path().write_text(json.dumps(config, indent=2))
    return config
