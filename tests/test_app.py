"""Tests for the command-line entry point."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gatekeep import app
from gatekeep.configuration import ConfigurationBundle


@pytest.fixture(autouse=True)
def _isolated(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("GATEKEEP_ROOT", str(tmp_path))
    monkeypatch.delenv("GATEKEEP_LOG_LEVEL", raising=False)
    monkeypatch.delenv("GATEKEEP_UI_VERBOSE", raising=False)
    yield
    logger = logging.getLogger("gatekeep")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def test_help_flag_lists_commands(capsys: pytest.CaptureFixture[str]):
    assert app.main(["--help"]) == 0

    out = capsys.readouterr().out
    assert "/setup" in out
    assert "/status" in out


def test_unknown_command_exits_non_zero(capsys: pytest.CaptureFixture[str]):
    assert app.main(["deploy"]) == 1
    assert "unknown command '/deploy'" in capsys.readouterr().out


def test_failing_step_exits_non_zero(tmp_path: Path, capsys: pytest.CaptureFixture[str]):
    assert app.main(["/target", "--target", str(tmp_path / "missing")]) == 1
    assert "does not exist" in capsys.readouterr().out
    assert (tmp_path / ".gatekeep" / "setup.json").exists()


def test_bootstrap_logs_into_tool_dir(tmp_path: Path):
    bundle = app.bootstrap()

    assert bundle.root == tmp_path.resolve()
    assert bundle.status == "ready"
    assert bundle.log_path == tmp_path.resolve() / ".gatekeep" / "logs" / "setup.log"


def test_paths_with_spaces_survive(tmp_path: Path):
    project = tmp_path / "my project"
    project.mkdir()

    assert app.main(["target", "--target", str(project)]) == 0


def test_repl_runs_until_quit(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str], tmp_path: Path):
    router = app.build_router(ConfigurationBundle(root=tmp_path, status="ready"))
    lines = iter(["", "/reset", "/nope", "quit"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(lines))
    monkeypatch.setattr(app, "configure_autocomplete", lambda router: None)

    exit_code = app.repl(router, verbose=False)

    out = capsys.readouterr().out
    assert "nothing to reset" in out
    assert "unknown command '/nope'" in out
    assert exit_code == 1


@pytest.mark.parametrize(
    "value, expected",
    [("1", True), ("off", False), ("maybe", True)],
)
def test_env_flag_parsing(value, expected):
    assert app._parse_env_flag(value) is expected
