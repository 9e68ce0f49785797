from __future__ import annotations

import json
from pathlib import Path

import pytest

from gatekeep import classify
from gatekeep.errors import ValidationError


def test_greenfield_seeds_registries(tmp_path: Path):
    created = classify.classify(tmp_path, classify.GREENFIELD)

    assert created == [tmp_path / "main-index.json", tmp_path / "ui" / "registry.json"]
    registry = json.loads((tmp_path / "main-index.json").read_text(encoding="utf-8"))
    assert registry == {"version": "1.0", "modules": [], "ids": {"API": {}, "SVC": {}, "DB": {}}}
    assert json.loads((tmp_path / "ui" / "registry.json").read_text(encoding="utf-8")) == {}
    assert (tmp_path / ".gatekeep").is_dir()


def test_greenfield_is_idempotent(tmp_path: Path):
    classify.classify(tmp_path, classify.GREENFIELD)
    (tmp_path / "main-index.json").write_text('{"modules": ["kept"]}', encoding="utf-8")

    assert classify.classify(tmp_path, classify.GREENFIELD) == []
    assert "kept" in (tmp_path / "main-index.json").read_text(encoding="utf-8")


def test_existing_registry_elsewhere_is_respected(tmp_path: Path):
    registry = tmp_path / "registry" / "main-index.json"
    registry.parent.mkdir()
    registry.write_text("", encoding="utf-8")

    created = classify.classify(tmp_path, classify.GREENFIELD)

    assert created == [tmp_path / "ui" / "registry.json"]
    assert registry.read_text(encoding="utf-8") == ""
    assert not (tmp_path / "main-index.json").exists()


def test_brownfield_seeds_nothing(tmp_path: Path):
    assert classify.classify(tmp_path, classify.BROWNFIELD) == []
    assert list(tmp_path.iterdir()) == []


def test_resolve_mode():
    assert classify.resolve_mode("Brownfield", "greenfield") == "brownfield"
    assert classify.resolve_mode("", "greenfield") == "greenfield"
    with pytest.raises(ValidationError, match="mode is required"):
        classify.resolve_mode("", "")
    with pytest.raises(ValidationError, match="invalid mode: legacy"):
        classify.resolve_mode("legacy", "")
