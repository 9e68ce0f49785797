"""Static catalog of known AI agent integrations."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Iterable, List, Sequence

from ..environment import HostEnvironment

logger = logging.getLogger("gatekeep.agents.signatures")

TOOL_KEY = "gatekeep"
STRUCTURED = "structured"
SECTIONED = "sectioned"
SERVE_ARGS: Sequence[str] = ("mcp", "serve")


@dataclass(frozen=True)
class AgentSignature:
    """Where an agent keeps its config and how this tool registers in it."""

    name: str
    config_paths: Sequence[Path]
    config_format: str
    entries_key: str
    tool_key: str = TOOL_KEY
    process_names: Sequence[str] = field(default_factory=tuple)
    restart_message: str = ""
    icon: str = ""

    @property
    def id(self) -> str:
        return agent_id(self.name)


def agent_id(name: str) -> str:
    return name.strip().lower().replace(" ", "-")


def default_signatures(env: HostEnvironment) -> List[AgentSignature]:
    home = env.home
    return [
        AgentSignature(
            name="Cursor",
            config_paths=(
                env.appdata / "Cursor" / "mcp.json",
                home / ".cursor" / "mcp.json",
            ),
            config_format=STRUCTURED,
            entries_key="mcpServers",
            process_names=("Cursor.exe", "cursor.exe", "Cursor", "cursor"),
            restart_message="Please close and reopen Cursor to apply changes.",
            icon="code",
        ),
        AgentSignature(
            name="Claude Desktop",
            config_paths=(
                env.appdata / "Claude" / "claude_desktop_config.json",
                home / ".config" / "Claude" / "claude_desktop_config.json",
                home / "Library" / "Application Support" / "Claude" / "claude_desktop_config.json",
            ),
            config_format=STRUCTURED,
            entries_key="mcpServers",
            process_names=("Claude.exe", "claude.exe", "Claude"),
            restart_message="Please close and reopen Claude Desktop to apply changes.",
            icon="chat",
        ),
        AgentSignature(
            name="Windsurf",
            config_paths=(
                env.userprofile / ".codeium" / "windsurf" / "mcp_config.json",
                env.appdata / "Windsurf" / "User" / "mcp.json",
                home / ".config" / "windsurf" / "mcp.json",
            ),
            config_format=STRUCTURED,
            entries_key="mcpServers",
            process_names=("Windsurf.exe", "windsurf.exe", "Windsurf", "windsurf"),
            restart_message="Please close and reopen Windsurf to apply changes.",
            icon="wind",
        ),
        AgentSignature(
            name="Codex CLI",
            config_paths=(
                env.codex_home / "config.toml",
                home / ".codex" / "config.toml",
                home / ".config" / "codex" / "config.toml",
            ),
            config_format=SECTIONED,
            entries_key="mcp_servers",
            process_names=("codex", "codex.exe"),
            restart_message="Please restart your terminal/CLI session to apply changes.",
            icon="terminal",
        ),
        AgentSignature(
            name="Generic MCP",
            config_paths=(
                home / ".mcp" / "config.json",
                home / ".config" / "mcp" / "servers.json",
            ),
            config_format=STRUCTURED,
            entries_key="servers",
            restart_message="Please restart your MCP client to apply changes.",
            icon="puzzle",
        ),
    ]


def filter_signatures(
    signatures: Iterable[AgentSignature],
    enabled: Sequence[str] = (),
    disabled: Sequence[str] = (),
) -> List[AgentSignature]:
    """Apply the ``agents.enabled`` allow-list or the ``agents.disabled`` deny-list."""

    allow = {agent_id(item) for item in enabled if str(item).strip()}
    deny = {agent_id(item) for item in disabled if str(item).strip()}
    selected: List[AgentSignature] = []
    for signature in signatures:
        if allow and signature.id not in allow:
            logger.debug("Skipping signature '%s' (not in allow-list).", signature.name)
            continue
        if signature.id in deny:
            logger.debug("Skipping signature '%s' (deny-listed).", signature.name)
            continue
        selected.append(signature)
    return selected


__all__ = [
    "AgentSignature",
    "SECTIONED",
    "SERVE_ARGS",
    "STRUCTURED",
    "TOOL_KEY",
    "agent_id",
    "default_signatures",
    "filter_signatures",
]
