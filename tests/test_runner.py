from __future__ import annotations

from pathlib import Path

import pytest

from gatekeep import runner
from gatekeep.errors import ExternalCommandError, ValidationError
from gatekeep.process import CommandResult
from gatekeep.state import Action


@pytest.mark.parametrize(
    "action, tail",
    [
        (Action(name="scan"), []),
        (Action(name="fix", fix_dry_run=True), ["--dry-run"]),
        (Action(name="fix", fix_apply=True), ["--apply"]),
        (Action(name="verify", vectors_path="v.json"), ["--vectors", "v.json"]),
        (Action(name="watch", watch_path="src"), ["--watch", "src"]),
    ],
)
def test_build_command(action, tail):
    command = runner.build_command("/opt/gatekeep", action, Path("/work"))

    assert command[:4] == ["/opt/gatekeep", action.name, "--target", "/work"]
    assert command[4:] == tail


def test_validate_action_name():
    assert runner.validate_action_name(" Fix-Loop ") == "fix-loop"
    with pytest.raises(ValidationError, match="action is required"):
        runner.validate_action_name("")
    with pytest.raises(ValidationError, match="unknown action: deploy"):
        runner.validate_action_name("deploy")


def test_binary_runner_success(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    seen = {}

    def fake_run(command, timeout, *, cwd=None, env=None):
        seen.update(command=command, timeout=timeout, cwd=cwd)
        return CommandResult(command=command, returncode=0, output="clean")

    monkeypatch.setattr(runner, "run_bounded", fake_run)
    binary = runner.BinaryRunner("/opt/gatekeep", timeout=12)

    binary.run(Action(name="scan"), tmp_path)

    assert seen == {
        "command": ["/opt/gatekeep", "scan", "--target", str(tmp_path)],
        "timeout": 12,
        "cwd": tmp_path,
    }
    assert [result.output for result in binary.history] == ["clean"]


def test_binary_runner_failures(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    results = [
        CommandResult(command=[], returncode=2, output="violations"),
        CommandResult(command=[], returncode=-1, output="", timed_out=True),
    ]
    monkeypatch.setattr(runner, "run_bounded", lambda *args, **kwargs: results.pop(0))
    binary = runner.BinaryRunner("/opt/gatekeep", timeout=5)

    with pytest.raises(ExternalCommandError, match="verify exited 2") as excinfo:
        binary.run(Action(name="verify"), tmp_path)
    assert excinfo.value.output == "violations"
    with pytest.raises(ExternalCommandError, match="timed out after 5s"):
        binary.run(Action(name="verify"), tmp_path)


def test_binary_runner_requires_binary(tmp_path: Path):
    with pytest.raises(ExternalCommandError, match="binary path is not set"):
        runner.BinaryRunner("").run(Action(name="scan"), tmp_path)
    with pytest.raises(ValidationError):
        runner.BinaryRunner("/opt/gatekeep").run(Action(name="nope"), tmp_path)
