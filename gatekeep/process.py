"""Bounded execution of external commands (git, the managed binary)."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import subprocess
import time
from typing import Dict, Mapping, Optional, Sequence

logger = logging.getLogger("gatekeep.process")

DEFAULT_SELFTEST_TIMEOUT = 5.0
DEFAULT_DOCTOR_TIMEOUT = 30.0
MISSING_COMMAND_EXIT = 127
NOT_EXECUTABLE_EXIT = 126
SELFTEST_ARGS: Sequence[str] = ("mcp", "selftest")
DOCTOR_ARGS: Sequence[str] = ("doctor",)


@dataclass
class CommandResult:
    command: Sequence[str]
    returncode: int
    output: str
    timed_out: bool = False
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    def to_dict(self) -> Dict[str, object]:
        return {
            "ok": self.ok,
            "returncode": self.returncode,
            "output": self.output,
            "timedOut": self.timed_out,
            "duration": round(self.duration, 3),
        }


def run_bounded(
    command: Sequence[str],
    timeout: float,
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> CommandResult:
    """Run ``command`` with stdout/stderr combined; kill it after ``timeout``."""

    args = [str(part) for part in command]
    merged_env = None
    if env:
        merged_env = os.environ.copy()
        merged_env.update(env)

    start = time.perf_counter()
    try:
        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            env=merged_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        logger.warning("Command '%s' not found: %s", args[0], exc)
        return CommandResult(
            command=args,
            returncode=MISSING_COMMAND_EXIT,
            output=f"command not found: {args[0]}",
            duration=time.perf_counter() - start,
        )
    except OSError as exc:
        logger.warning("Command '%s' could not be started: %s", args[0], exc)
        return CommandResult(
            command=args,
            returncode=NOT_EXECUTABLE_EXIT,
            output=f"cannot execute {args[0]}: {exc}",
            duration=time.perf_counter() - start,
        )
    except subprocess.TimeoutExpired as exc:
        duration = time.perf_counter() - start
        logger.warning("Command '%s' timed out after %ss", " ".join(args), timeout)
        return CommandResult(
            command=args,
            returncode=-1,
            output=_decode(exc.output),
            timed_out=True,
            duration=duration,
        )

    duration = time.perf_counter() - start
    logger.debug(
        "Command '%s' exited %s in %.2fs", " ".join(args), completed.returncode, duration
    )
    return CommandResult(
        command=args,
        returncode=completed.returncode,
        output=completed.stdout or "",
        duration=duration,
    )


def run_selftest(binary: Path, timeout: float = DEFAULT_SELFTEST_TIMEOUT) -> CommandResult:
    """Exercise the binary's protocol handshake without running a scan."""

    return run_bounded([str(binary), *SELFTEST_ARGS], timeout)


def run_doctor(
    binary: Path,
    root: Path,
    timeout: float = DEFAULT_DOCTOR_TIMEOUT,
) -> CommandResult:
    return run_bounded([str(binary), *DOCTOR_ARGS], timeout, cwd=root)


def _decode(raw: object) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return str(raw)


__all__ = [
    "CommandResult",
    "DEFAULT_DOCTOR_TIMEOUT",
    "DEFAULT_SELFTEST_TIMEOUT",
    "MISSING_COMMAND_EXIT",
    "NOT_EXECUTABLE_EXIT",
    "run_bounded",
    "run_doctor",
    "run_selftest",
]
