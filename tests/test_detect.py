"""Tests for agent detection."""

from __future__ import annotations

import json
from pathlib import Path
from types import SimpleNamespace

import pytest

from gatekeep.agents import detect
from gatekeep.environment import HostEnvironment

_agent_running = detect.agent_running


@pytest.fixture(autouse=True)
def _no_process_scan(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(detect, "agent_running", lambda names: False)


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_no_matches_yields_single_manual_fallback(tmp_path: Path):
    env = HostEnvironment.for_home(tmp_path)

    result = detect.detect_agents(env)

    assert result.is_manual_fallback
    assert len(result.agents) == 1
    fallback = result.agents[0]
    assert fallback.id == "manual"
    assert fallback.status == detect.STATUS_MANUAL
    assert fallback.config_exists is False
    assert fallback.config_path == str(env.appdata / "Claude" / "claude_desktop_config.json")
    assert not (env.appdata / "Claude").exists()


def test_first_existing_candidate_wins(tmp_path: Path):
    env = HostEnvironment.for_home(tmp_path)
    first = _write(env.appdata / "Cursor" / "mcp.json", "{}")
    _write(tmp_path / ".cursor" / "mcp.json", '{"mcpServers": {"gatekeep": {}}}')

    result = detect.detect_agents(env)

    assert not result.is_manual_fallback
    [cursor] = result.agents
    assert cursor.config_path == str(first)
    assert cursor.config_valid is True
    assert cursor.has_entry is False


def test_detects_existing_registration_and_parse_errors(tmp_path: Path):
    env = HostEnvironment.for_home(tmp_path)
    _write(tmp_path / ".cursor" / "mcp.json", '{"mcpServers": {"gatekeep": {"command": "x"},},}')
    _write(tmp_path / ".codex" / "config.toml", "[mcp_servers\n")

    result = detect.detect_agents(env)

    by_id = {agent.id: agent for agent in result.agents}
    assert by_id["cursor"].has_entry is True
    assert by_id["codex-cli"].config_valid is False
    assert "invalid TOML" in by_id["codex-cli"].config_error
    assert result.multiple_agents


def test_detection_is_recomputed_each_pass(tmp_path: Path):
    env = HostEnvironment.for_home(tmp_path)
    assert detect.detect_agents(env).is_manual_fallback

    _write(tmp_path / ".mcp" / "config.json", '{"servers": {}}')

    result = detect.detect_agents(env)
    assert [agent.id for agent in result.agents] == ["generic-mcp"]


def test_write_and_update_detect_report(tmp_path: Path):
    env = HostEnvironment.for_home(tmp_path / "home")
    _write(tmp_path / "home" / ".cursor" / "mcp.json", "{}")
    root = tmp_path / "ws"

    result = detect.detect_agents(env)
    path = detect.write_detect_report(root, result)
    detect.mark_configured_in_report(root, ["cursor"])

    report = json.loads(path.read_text(encoding="utf-8"))
    assert report["isManualFallback"] is False
    assert "generatedAtUtc" in report
    rows = {row["clientName"]: row for row in report["clients"]}
    assert rows["Cursor"]["installed"] is True
    assert rows["Cursor"]["alreadyConfigured"] is True
    assert rows["Windsurf"]["installed"] is False


def test_can_write_path_never_creates_directories(tmp_path: Path):
    target = tmp_path / "a" / "b" / "config.json"

    assert detect.can_write_path(target) is True
    assert not (tmp_path / "a").exists()


def test_agent_running_matches_process_names(monkeypatch: pytest.MonkeyPatch):
    processes = [
        SimpleNamespace(info={"name": "bash"}),
        SimpleNamespace(info={"name": None}),
        SimpleNamespace(info={"name": "Cursor.exe"}),
    ]
    monkeypatch.setattr(detect.psutil, "process_iter", lambda attrs: iter(processes))

    assert _agent_running(["cursor.exe"]) is True
    assert _agent_running(["windsurf"]) is False
    assert _agent_running([]) is False
