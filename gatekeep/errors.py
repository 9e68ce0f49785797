"""Exception types raised by setup steps."""

from __future__ import annotations

from typing import Optional


class SetupError(Exception):
    """Base class for failures that should be recorded against a step."""


class ValidationError(SetupError):
    """Caller supplied a missing or invalid target, mode, action, or agent."""


class PreconditionError(SetupError):
    """A required input exists but is unusable (binary path, config file)."""


class BackupError(SetupError):
    """An agent config could not be backed up, so it was left untouched."""


class CloneError(SetupError):
    """Cloning a remote target failed or timed out."""


class ConfigParseError(PreconditionError):
    """An agent config file exists but cannot be parsed in its declared format."""


class StateError(SetupError):
    """The persisted setup document could not be decoded."""


class StateVersionError(StateError):
    """The persisted setup document declares an unsupported schema version."""


class FixLoopExhausted(SetupError):
    """The fix loop ran out of attempts before the report reached PASS."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"fix loop exceeded max attempts ({attempts})")
        self.attempts = attempts


class ExternalCommandError(SetupError):
    """An external command exited non-zero or timed out."""

    def __init__(
        self,
        message: str,
        *,
        output: str = "",
        returncode: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        detail = message
        if output.strip():
            detail = f"{message}: {output.strip()}"
        super().__init__(detail)
        self.output = output
        self.returncode = returncode
        self.timed_out = timed_out


__all__ = [
    "BackupError",
    "CloneError",
    "ConfigParseError",
    "ExternalCommandError",
    "FixLoopExhausted",
    "PreconditionError",
    "SetupError",
    "StateError",
    "StateVersionError",
    "ValidationError",
]
