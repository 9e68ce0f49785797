"""Tests for the workspace-aware configuration loader."""

from __future__ import annotations

from pathlib import Path

import pytest

from gatekeep import configuration


def _prepare_repo_defaults(tmp_path: Path, content: str = "setup:\n  max_fix_attempts: 3\n") -> Path:
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "10-defaults.yml").write_text(content, encoding="utf-8")
    return config_dir


def _write_override(root: Path, content: str) -> None:
    cfg_dir = root / ".gatekeep" / "config"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    (cfg_dir / "local.yml").write_text(content, encoding="utf-8")


def test_resolve_workspace_root_uses_env(tmp_path: Path):
    env = {"GATEKEEP_ROOT": str(tmp_path / "ws")}

    assert configuration.resolve_workspace_root(env=env) == (tmp_path / "ws").resolve()


def test_resolve_workspace_root_defaults_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)

    assert configuration.resolve_workspace_root(env={}) == Path.cwd()


def test_overrides_merge_over_repo_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path, "setup:\n  max_fix_attempts: 3\n  clone_timeout: 120\n")
    root = tmp_path / "ws"
    _write_override(root, "setup:\n  max_fix_attempts: 5\n")
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(root)

    assert bundle.status == "ready"
    assert bundle.merged["setup"]["max_fix_attempts"] == 5
    assert bundle.merged["setup"]["clone_timeout"] == 120
    assert len(bundle.files_loaded) == 2


def test_schema_fills_missing_sections(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path, "logging:\n  level: INFO\n")
    root = tmp_path / "ws"
    root.mkdir()
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(root)

    assert bundle.merged["runner"]["timeout"] == 1800
    assert bundle.merged["agents"]["enabled"] == []
    assert bundle.merged["setup"]["skip_selftest"] is False


def test_bool_is_rejected_for_integer_setting(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    repo_dir = _prepare_repo_defaults(tmp_path)
    root = tmp_path / "ws"
    _write_override(root, "setup:\n  max_fix_attempts: true\n")
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", repo_dir)

    bundle = configuration.load_runtime_configuration(root)

    assert bundle.status == "invalid"
    assert any("max_fix_attempts" in diag.message for diag in bundle.diagnostics)
    assert bundle.merged["setup"]["max_fix_attempts"] == 3


def test_missing_root_is_reported(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_repo_defaults(tmp_path))

    bundle = configuration.load_runtime_configuration(tmp_path / "missing")

    assert bundle.status == "missing"
    assert any(diag.level == "error" for diag in bundle.diagnostics)


def test_bad_yaml_becomes_diagnostic(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_repo_defaults(tmp_path))
    root = tmp_path / "ws"
    _write_override(root, "setup: [unclosed\n")

    bundle = configuration.load_runtime_configuration(root)

    assert bundle.status == "invalid"
    assert any("Failed to parse" in diag.message for diag in bundle.diagnostics)


def test_unknown_keys_warn(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(configuration, "DEFAULT_CONFIG_DIR", _prepare_repo_defaults(tmp_path))
    root = tmp_path / "ws"
    _write_override(root, "mystery:\n  value: 1\n")

    bundle = configuration.load_runtime_configuration(root)

    assert bundle.status == "ready"
    assert any("Unknown configuration key" in diag.message for diag in bundle.diagnostics)
