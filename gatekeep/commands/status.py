"""Slash command for the persisted setup state and config diagnostics."""

from __future__ import annotations

from typing import List

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..errors import StateError
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich
from ..state import load_state, setup_path
from .common import flow_context, state_panel, step_table, usage_error


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    config = context.config
    flow = flow_context(context)
    try:
        state = load_state(flow.root)
    except StateError as exc:
        return usage_error(context, "status", exc)
    show_config = any(arg in {"--config", "config", "-c"} for arg in args)

    def _render(console: Console) -> None:
        console.print(state_panel(state, title=f"Setup ({setup_path(flow.root)})"))
        console.print(step_table(state))
        if not show_config and not config.diagnostics:
            return

        info = Table.grid(padding=(0, 1))
        info.add_column("Key", style="bold", no_wrap=True)
        info.add_column("Value", overflow="fold")
        info.add_row("Root", str(config.root))
        info.add_row("Config", config.status)
        info.add_row("Config files", str(len(config.files_loaded)))
        info.add_row("Log path", str(config.log_path or "(not initialized)"))
        console.print(Panel(info, title="Runtime", border_style="cyan", padding=(0, 1)))

        if config.diagnostics:
            diag_table = Table(show_header=True, header_style="bold red", box=box.SIMPLE, pad_edge=False)
            diag_table.add_column("Lvl", style="red", no_wrap=True)
            diag_table.add_column("Message", overflow="fold", ratio=2)
            diag_table.add_column("Source", overflow="fold", ratio=2)
            for diag in config.diagnostics:
                diag_table.add_row(
                    diag.level.upper(),
                    escape(diag.message),
                    str(diag.source or config.root),
                )
            console.print(Panel(diag_table, title="Diagnostics", border_style="red", padding=(0, 1)))

    return render_rich(_render)


COMMAND = SlashCommand(
    name="status",
    description="Show setup progress, the last error and whether a resume is available.",
    handler=_handler,
)
