"""Slash commands that run a single setup step."""

from __future__ import annotations

from typing import List

from ..errors import ValidationError
from ..flow import run_step
from ..slash_commands import SlashCommand, SlashCommandContext, SlashCommandHandler
from ..state import StepId
from .common import execute, flow_context, flow_runner, leftover_args, usage_error
from .options import parse_options


def _step_handler(name: str, step: StepId) -> SlashCommandHandler:
    def _handler(context: SlashCommandContext, args: List[str]) -> str:
        try:
            options, extras = parse_options(args)
        except ValidationError as exc:
            return usage_error(context, name, exc)
        problem = leftover_args(context, name, extras)
        if problem:
            return problem

        flow = flow_context(context)
        runner = flow_runner(context, flow, options)
        return execute(context, name, lambda: run_step(flow, step, options, runner))

    return _handler


def _step_command(name: str, step: StepId, description: str) -> SlashCommand:
    return SlashCommand(name=name, description=description, handler=_step_handler(name, step))


TARGET_COMMAND = _step_command(
    "target",
    StepId.SELECT_TARGET,
    "Select a local directory (--target) or clone a repo (--repo/--ref/--subdir).",
)
DETECT_COMMAND = _step_command(
    "detect",
    StepId.DETECT_AGENTS,
    "Detect installed AI agents and write agent-detect.json.",
)
CONNECT_COMMAND = _step_command(
    "connect",
    StepId.CONNECT_AGENTS,
    "Back up and register gatekeep in agent configs (--client/--all/--config/--bin).",
)
VALIDATE_COMMAND = _step_command(
    "validate",
    StepId.VALIDATE_AGENTS,
    "Check agent configs and run the binary self-test (--skip-selftest).",
)
CLASSIFY_COMMAND = _step_command(
    "classify",
    StepId.CLASSIFY,
    "Record --mode greenfield|brownfield and scaffold greenfield registries.",
)

COMMANDS = [
    TARGET_COMMAND,
    DETECT_COMMAND,
    CONNECT_COMMAND,
    VALIDATE_COMMAND,
    CLASSIFY_COMMAND,
]

__all__ = ["COMMANDS"]
