"""Storage initialization, path helpers, and key slug utilities."""

import re
import unicodedata
from pathlib import Path

_data_dir: Path | None = None
_presets_dir: Path | None = None


def slugify(key: str) -> str:
    """Convert a storage key to a filesystem-safe slug.

    "skill_tracker_Player One" → "skill-tracker-player-one"
    """
    text = unicodedata.normalize("NFKD", key)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "untitled"


def init_storage(data_dir: Path, presets_dir: Path | None = None) -> None:
    global _data_dir, _presets_dir
    from . import presets as _presets_mod

    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    kv_dir().mkdir(exist_ok=True)
    if presets_dir is None:
        # Default: repo_root/presets
        presets_dir = Path(__file__).parent.parent.parent / "presets"
    _presets_dir = presets_dir
    _presets_mod.reset_cache()


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def presets_dir() -> Path:
    assert _presets_dir is not None, "Call init_storage() before using storage"
    return _presets_dir


def kv_dir() -> Path:
    return data_dir() / "kv"
