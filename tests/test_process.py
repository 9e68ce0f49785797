from __future__ import annotations

from pathlib import Path
import sys

from gatekeep import process


def test_missing_executable_reports_127(tmp_path: Path):
    result = process.run_bounded([str(tmp_path / "does-not-exist")], timeout=5)

    assert result.returncode == process.MISSING_COMMAND_EXIT
    assert not result.ok
    assert "command not found" in result.output


def test_output_is_captured_with_stderr(tmp_path: Path):
    script = "import sys; print('out'); print('err', file=sys.stderr); sys.exit(4)"

    result = process.run_bounded([sys.executable, "-c", script], timeout=30, cwd=tmp_path)

    assert result.returncode == 4
    assert "out" in result.output and "err" in result.output
    assert result.to_dict()["ok"] is False


def test_timeout_is_bounded():
    result = process.run_bounded([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.5)

    assert result.timed_out
    assert result.returncode == -1
    assert result.duration < 10


def test_doctor_runs_in_workspace(tmp_path: Path, monkeypatch):
    seen = {}

    def fake_run(command, timeout, *, cwd=None, env=None):
        seen.update(command=list(command), cwd=cwd, timeout=timeout)
        return process.CommandResult(command=command, returncode=0, output="healthy")

    monkeypatch.setattr(process, "run_bounded", fake_run)

    result = process.run_doctor(Path("/opt/gatekeep"), tmp_path, timeout=7)

    assert result.ok
    assert seen == {"command": ["/opt/gatekeep", "doctor"], "cwd": tmp_path, "timeout": 7}


def test_undecodable_output_is_replaced():
    script = "import sys; sys.stdout.buffer.write(b'\\xff\\xfe ok'); sys.stdout.flush()"

    result = process.run_bounded([sys.executable, "-c", script], timeout=30)

    assert result.ok
    assert result.output.endswith(" ok")
    assert "\ufffd" in result.output


def test_unexecutable_path_reports_126(tmp_path: Path):
    result = process.run_bounded([str(tmp_path)], timeout=5)

    assert result.returncode == process.NOT_EXECUTABLE_EXIT
    assert not result.ok
    assert "cannot execute" in result.output
