"""Tests for storage init and slug helpers."""

from pathlib import Path

from terminus import storage


def test_slugify_basic():
    assert storage.slugify("skill_tracker_Player One") == "skill-tracker-player-one"


def test_slugify_unicode():
    assert storage.slugify("session_Zoë") == "session-zoe"


def test_slugify_empty():
    assert storage.slugify("") == "untitled"


def test_init_storage_creates_dirs(tmp_path):
    storage.init_storage(tmp_path / "data", presets_dir=tmp_path / "presets")
    assert (tmp_path / "data" / "kv").is_dir()
    assert storage.presets_dir() == tmp_path / "presets"


def test_default_presets_dir(tmp_path):
    storage.init_storage(tmp_path)
    assert storage.presets_dir() == Path(storage.__file__).parent.parent.parent / "presets"
    assert (storage.presets_dir() / "story.json").is_file()
