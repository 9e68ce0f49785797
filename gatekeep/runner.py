"""Delegation of scan/fix/verify actions to the managed binary."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Protocol, Sequence

from .errors import ExternalCommandError, ValidationError
from .process import CommandResult, run_bounded
from .state import Action

logger = logging.getLogger("gatekeep.runner")

VALID_ACTIONS: Sequence[str] = ("scan", "verify", "fix", "fix-loop", "watch", "shadow", "doctor")
DEFAULT_RUNNER_TIMEOUT = 1800.0


class Runner(Protocol):
    def run(self, action: Action, target_root: Path) -> None:
        ...


def validate_action_name(name: str) -> str:
    normalized = (name or "").strip().lower()
    if not normalized:
        raise ValidationError("action is required")
    if normalized not in VALID_ACTIONS:
        raise ValidationError(f"unknown action: {name}")
    return normalized


def build_command(binary: str, action: Action, target_root: Path) -> List[str]:
    """``<bin> <action> --target <root>`` plus the flags the action carries."""

    command = [binary, action.name, "--target", str(target_root)]
    if action.name == "fix":
        command.append("--dry-run" if action.fix_dry_run else "--apply")
    if action.vectors_path:
        command.extend(["--vectors", action.vectors_path])
    if action.watch_path:
        command.extend(["--watch", action.watch_path])
    return command


class BinaryRunner:
    """Runs actions as bounded subprocesses of the managed binary."""

    def __init__(self, binary: str, timeout: float = DEFAULT_RUNNER_TIMEOUT) -> None:
        self.binary = binary
        self.timeout = timeout
        self.history: List[CommandResult] = []

    def run(self, action: Action, target_root: Path) -> None:
        validate_action_name(action.name)
        if not self.binary:
            raise ExternalCommandError(f"cannot run {action.name}: binary path is not set")
        command = build_command(self.binary, action, target_root)
        logger.info("Running %s", " ".join(command))
        result = run_bounded(command, self.timeout, cwd=Path(target_root))
        self.history.append(result)
        if result.timed_out:
            raise ExternalCommandError(
                f"{action.name} timed out after {self.timeout:g}s",
                output=result.output,
                returncode=result.returncode,
                timed_out=True,
            )
        if not result.ok:
            raise ExternalCommandError(
                f"{action.name} exited {result.returncode}",
                output=result.output,
                returncode=result.returncode,
            )


__all__ = [
    "BinaryRunner",
    "DEFAULT_RUNNER_TIMEOUT",
    "Runner",
    "VALID_ACTIONS",
    "build_command",
    "validate_action_name",
]
