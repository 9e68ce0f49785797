"""Slash command that runs the managed binary's diagnostics."""

from __future__ import annotations

from pathlib import Path
from typing import List

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from ..agents.connect import resolve_binary
from ..errors import SetupError, ValidationError
from ..process import run_doctor
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich
from ..state import load_state
from .common import flow_context, leftover_args, usage_error
from .options import parse_options


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    try:
        options, extras = parse_options(args)
    except ValidationError as exc:
        return usage_error(context, "doctor", exc)
    problem = leftover_args(context, "doctor", extras)
    if problem:
        return problem

    flow = flow_context(context)
    try:
        binary = resolve_binary(options.binary_path, flow.binary_path, flow.settings.binary_path)
        workspace = Path(options.target_path or load_state(flow.root).workspace_root() or flow.root)
    except SetupError as exc:
        return usage_error(context, "doctor", exc)

    result = run_doctor(Path(binary), workspace, flow.settings.doctor_timeout)
    if not result.ok:
        context.fail()

    def _render(console: Console) -> None:
        if result.timed_out:
            title, style = f"doctor timed out after {flow.settings.doctor_timeout:g}s", "red"
        elif result.ok:
            title, style = "doctor passed", "green"
        else:
            title, style = f"doctor exited {result.returncode}", "red"
        body = escape(result.output.strip()) or "[dim](no output)[/dim]"
        console.print(Panel(body, title=title, border_style=style, padding=(0, 1)))

    return render_rich(_render)


COMMAND = SlashCommand(
    name="doctor",
    description="Run '<bin> doctor' against the workspace with a timeout.",
    handler=_handler,
)
