"""Slash command registry."""

from __future__ import annotations

from .actions import COMMANDS as ACTION_COMMANDS
from .agents import COMMAND as AGENTS_COMMAND
from .doctor import COMMAND as DOCTOR_COMMAND
from .help import COMMAND as HELP_COMMAND
from .reset import COMMAND as RESET_COMMAND
from .setup import COMMAND as SETUP_COMMAND
from .status import COMMAND as STATUS_COMMAND
from .steps import COMMANDS as STEP_COMMANDS

COMMANDS = [
    SETUP_COMMAND,
    *STEP_COMMANDS,
    *ACTION_COMMANDS,
    DOCTOR_COMMAND,
    STATUS_COMMAND,
    AGENTS_COMMAND,
    RESET_COMMAND,
    HELP_COMMAND,
]

__all__ = ["COMMANDS"]
