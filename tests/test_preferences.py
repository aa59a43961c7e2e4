from __future__ import annotations

import json
from pathlib import Path

import pytest

from smartbiz.errors import ValidationError
from smartbiz.preferences import PreferenceStore


def _store(root: Path) -> PreferenceStore:
    (root / "README.md").write_text("test marker", encoding="utf-8")
    return PreferenceStore(str(root))


def test_theme_defaults_to_light(tmp_path: Path) -> None:
    assert _store(tmp_path).get_theme() == "light"


def test_theme_persists_across_instances(tmp_path: Path) -> None:
    _store(tmp_path).set_theme("Dark")

    assert PreferenceStore(str(tmp_path)).get_theme() == "dark"
    saved = json.loads((tmp_path / "var" / "preferences.json").read_text(encoding="utf-8"))
    assert saved == {"theme": "dark"}


def test_unknown_theme_is_rejected(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValidationError):
        store.set_theme("solarized")
    assert store.get_theme() == "light"


def test_corrupt_file_falls_back_to_default(tmp_path: Path) -> None:
    store = _store(tmp_path)
    (tmp_path / "var" / "preferences.json").write_text("{not json", encoding="utf-8")
    assert store.get_theme() == "light"
