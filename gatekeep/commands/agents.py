"""Slash command for the latest agent detection snapshot."""

from __future__ import annotations

from typing import List

from rich.table import Table

from ..agents.detect import agent_running, detect_agents
from ..errors import StateError
from ..slash_commands import SlashCommand, SlashCommandContext, render_rich
from ..state import load_state
from .common import flow_context, usage_error


def _handler(context: SlashCommandContext, args: List[str]) -> str:
    flow = flow_context(context)
    refresh = any(arg in {"--refresh", "-r", "refresh"} for arg in args)
    selected = set()
    if refresh:
        agents = detect_agents(flow.env, flow.agent_signatures()).agents
        title = "Detected Agents (live)"
    else:
        try:
            state = load_state(flow.root)
        except StateError as exc:
            return usage_error(context, "agents", exc)
        agents = state.detected_agents
        selected = set(state.selected_agents)
        title = "Detected Agents"
    if not agents:
        return "[agents] no detection snapshot yet. Run /detect or /agents --refresh."

    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Id", style="green", no_wrap=True)
    table.add_column("Name")
    table.add_column("Status", style="yellow", no_wrap=True)
    table.add_column("Registered", no_wrap=True)
    table.add_column("Running", no_wrap=True)
    table.add_column("Config", overflow="fold")

    for agent in agents:
        config_note = agent.config_path
        if agent.config_exists and not agent.config_valid:
            config_note += f" (unreadable: {agent.config_error})"
        marker = " *" if agent.id in selected else ""
        table.add_row(
            agent.id + marker,
            agent.name,
            agent.status,
            "yes" if agent.has_entry else "no",
            "yes" if agent_running(agent.process_names) else "no",
            config_note,
        )

    return render_rich(lambda console: console.print(table))


COMMAND = SlashCommand(
    name="agents",
    description="Show detected agents, their registration and whether they are running.",
    handler=_handler,
)
