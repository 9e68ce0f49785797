"""Slash commands that delegate an action to the managed binary."""

from __future__ import annotations

from typing import List

from ..errors import ValidationError
from ..flow import run_action
from ..slash_commands import SlashCommand, SlashCommandContext, SlashCommandHandler
from .common import execute, flow_context, flow_runner, leftover_args, usage_error
from .options import parse_options

ACTION_DESCRIPTIONS = {
    "scan": "Scan the selected workspace.",
    "verify": "Verify the selected workspace.",
    "fix": "Apply fixes (--dry-run to preview, --apply to write).",
    "fix-loop": "Fix, rescan and verify until the report passes (--max-fix-attempts).",
    "watch": "Watch the workspace for changes (--watch <path>).",
    "shadow": "Run shadow checks against a vector set (--vectors <path>).",
}


def _action_handler(name: str) -> SlashCommandHandler:
    def _handler(context: SlashCommandContext, args: List[str]) -> str:
        try:
            options, extras = parse_options(args, action=name)
        except ValidationError as exc:
            return usage_error(context, name, exc)
        problem = leftover_args(context, name, extras)
        if problem:
            return problem
        options.action.name = name

        flow = flow_context(context)
        runner = flow_runner(context, flow, options)
        return execute(context, name, lambda: run_action(flow, options, runner))

    return _handler


COMMANDS = [
    SlashCommand(name=name, description=description, handler=_action_handler(name))
    for name, description in ACTION_DESCRIPTIONS.items()
]

__all__ = ["COMMANDS"]
