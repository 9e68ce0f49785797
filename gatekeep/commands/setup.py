"""Slash command that runs the full resumable setup flow."""

from __future__ import annotations

from typing import List

from ..errors import ValidationError
from ..flow import run
from ..slash_commands import SlashCommand, SlashCommandContext
from .common import execute, flow_context, flow_runner, leftover_args, usage_error
from .options import parse_options


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    try:
        options, extras = parse_options(args)
    except ValidationError as exc:
        return usage_error(context, "setup", exc)
    problem = leftover_args(context, "setup", extras)
    if problem:
        return problem

    flow = flow_context(context)
    runner = flow_runner(context, flow, options)
    return execute(context, "setup", lambda: run(flow, options, runner))


COMMAND = SlashCommand(
    name="setup",
    description="Run (or resume) every setup step in order.",
    handler=_handler,
)
