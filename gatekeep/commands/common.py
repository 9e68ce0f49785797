"""Helpers shared by the flow-driving slash commands."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..agents.connect import resolve_binary
from ..errors import SetupError
from ..flow import FlowContext, Options
from ..runner import BinaryRunner, Runner
from ..slash_commands import SlashCommandContext, render_rich
from ..state import STATUS_COMPLETE, STATUS_FAILED, STEP_ORDER, SetupState

logger = logging.getLogger("gatekeep.commands")

STATUS_STYLES = {
    STATUS_COMPLETE: "green",
    STATUS_FAILED: "red",
}


def flow_context(context: SlashCommandContext) -> FlowContext:
    """The FlowContext for this router; tests inject one through metadata."""

    injected = context.metadata.get("flow_context")
    if injected is not None:
        return injected
    return FlowContext.from_bundle(
        context.config,
        env=context.metadata.get("host_env"),
        environ=context.metadata.get("environ"),
    )


def flow_runner(context: SlashCommandContext, flow: FlowContext, options: Options) -> Runner:
    injected = context.metadata.get("runner")
    if injected is not None:
        return injected
    binary = resolve_binary(
        options.binary_path,
        flow.binary_path,
        flow.settings.binary_path,
        required=False,
    )
    return BinaryRunner(binary, flow.settings.runner_timeout)


def execute(
    context: SlashCommandContext,
    label: str,
    operation: Callable[[], SetupState],
) -> str:
    """Run ``operation`` and render the resulting state or the failure."""

    try:
        state = operation()
    except (SetupError, OSError) as exc:
        context.fail()
        logger.debug("/%s failed: %s", label, exc)
        return render_rich(
            lambda console: console.print(f"[red]\\[{label}] error:[/red] {escape(str(exc))}")
        )
    if state.status == STATUS_FAILED:
        context.fail()
    return render_state(state, title=f"/{label}")


def render_state(state: SetupState, *, title: str = "Setup") -> str:
    def _render(console: Console) -> None:
        console.print(state_panel(state, title=title))
        console.print(step_table(state))

    return render_rich(_render)


def state_panel(state: SetupState, *, title: str) -> Panel:
    info = Table.grid(padding=(0, 1))
    info.add_column("Key", style="bold", no_wrap=True)
    info.add_column("Value", overflow="fold")
    style = STATUS_STYLES.get(state.status, "yellow")
    info.add_row("Status", f"[{style}]{state.status or '(not started)'}[/{style}]")
    info.add_row("Current step", state.current_step or "(none)")
    info.add_row("Workspace", state.workspace_root() or "(unset)")
    if state.mode:
        info.add_row("Mode", state.mode)
    if state.action.name:
        info.add_row("Action", state.action.name)
    if state.selected_agents:
        info.add_row("Agents", ", ".join(state.selected_agents))
    if state.last_error:
        info.add_row("Error", f"[red]{state.last_error_step}: {escape(state.last_error)}[/red]")
    info.add_row("Resume", "available" if state.resume_available else "no")
    return Panel(info, title=title, border_style=style, padding=(0, 1))


def step_table(state: SetupState) -> Table:
    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Step", style="green", no_wrap=True)
    table.add_column("Name")
    table.add_column("State", no_wrap=True)
    for step in STEP_ORDER:
        if step.value in state.steps_completed:
            marker = "[green]done[/green]"
        elif step.value == state.last_error_step:
            marker = "[red]failed[/red]"
        else:
            marker = "[dim]pending[/dim]"
        table.add_row(step.value, step.label, marker)
    return table


def usage_error(context: SlashCommandContext, label: str, exc: Exception) -> str:
    context.fail()
    return f"[{label}] {exc}"


def leftover_args(context: SlashCommandContext, label: str, extras: List[str]) -> Optional[str]:
    if not extras:
        return None
    context.fail()
    return f"[{label}] unexpected arguments: {' '.join(extras)}"


__all__ = [
    "execute",
    "flow_context",
    "flow_runner",
    "leftover_args",
    "render_state",
    "state_panel",
    "step_table",
    "usage_error",
]
