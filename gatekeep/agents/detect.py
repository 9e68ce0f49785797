"""Probe the host for agent configs and summarize what was found."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import psutil

from ..environment import HostEnvironment
from ..errors import ConfigParseError
from ..persistence import read_json, tool_dir, utc_timestamp, write_json_atomic
from .formats import format_for
from .signatures import STRUCTURED, TOOL_KEY, AgentSignature, agent_id, default_signatures

logger = logging.getLogger("gatekeep.agents.detect")

DETECT_FILENAME = "agent-detect.json"
STATUS_DETECTED = "DETECTED"
STATUS_MANUAL = "MANUAL"
STATUS_CONFIGURED = "CONFIGURED"
MANUAL_AGENT_ID = "manual"


@dataclass
class Agent:
    """One detected (or fallback) agent integration."""

    id: str
    name: str
    config_path: str
    config_format: str
    entries_key: str
    tool_key: str = TOOL_KEY
    process_names: List[str] = field(default_factory=list)
    restart_message: str = ""
    icon: str = ""
    config_exists: bool = False
    config_valid: bool = False
    config_error: str = ""
    has_entry: bool = False
    running: bool = False
    status: str = STATUS_DETECTED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "configPath": self.config_path,
            "configFormat": self.config_format,
            "entriesKey": self.entries_key,
            "toolKey": self.tool_key,
        }
        if self.process_names:
            payload["processNames"] = list(self.process_names)
        if self.restart_message:
            payload["restartMessage"] = self.restart_message
        if self.icon:
            payload["icon"] = self.icon
        payload.update(
            {
                "configExists": self.config_exists,
                "configValid": self.config_valid,
                "hasEntry": self.has_entry,
                "running": self.running,
                "status": self.status,
            }
        )
        if self.config_error:
            payload["configError"] = self.config_error
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Agent":
        return cls(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            config_path=str(raw.get("configPath", "")),
            config_format=str(raw.get("configFormat", STRUCTURED)),
            entries_key=str(raw.get("entriesKey", "")),
            tool_key=str(raw.get("toolKey", TOOL_KEY)),
            process_names=[str(item) for item in raw.get("processNames") or []],
            restart_message=str(raw.get("restartMessage", "")),
            icon=str(raw.get("icon", "")),
            config_exists=bool(raw.get("configExists", False)),
            config_valid=bool(raw.get("configValid", False)),
            config_error=str(raw.get("configError", "")),
            has_entry=bool(raw.get("hasEntry", False)),
            running=bool(raw.get("running", False)),
            status=str(raw.get("status", STATUS_DETECTED)),
        )


@dataclass
class DetectEntry:
    """Per-signature row of the detection report."""

    client_name: str
    installed: bool
    config_format: str
    config_path: str = ""
    can_write: bool = False
    already_configured: bool = False
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "clientName": self.client_name,
            "installed": self.installed,
            "configPath": self.config_path,
            "configFormat": self.config_format,
            "canWrite": self.can_write,
            "alreadyConfigured": self.already_configured,
        }
        if self.notes:
            payload["notes"] = self.notes
        return payload


@dataclass
class DetectResult:
    agents: List[Agent]
    entries: List[DetectEntry]
    is_manual_fallback: bool = False

    @property
    def multiple_agents(self) -> bool:
        return len(self.agents) > 1


def detect_agents(
    env: HostEnvironment,
    signatures: Optional[Sequence[AgentSignature]] = None,
) -> DetectResult:
    """Run a fresh detection pass; nothing from earlier passes is reused."""

    catalog = list(signatures) if signatures is not None else default_signatures(env)
    agents: List[Agent] = []
    entries: List[DetectEntry] = []

    for signature in catalog:
        entry = DetectEntry(
            client_name=signature.name,
            installed=False,
            config_format=signature.config_format,
        )
        config_path = _first_existing(signature.config_paths)
        if config_path is None:
            entry.notes = "config not found"
            entries.append(entry)
            continue

        agent = _agent_from_signature(signature, config_path)
        inspect_config(agent)
        agent.running = agent_running(agent.process_names)
        agents.append(agent)

        entry.installed = True
        entry.config_path = str(config_path)
        entry.can_write = can_write_path(config_path)
        entry.already_configured = agent.has_entry
        if not agent.config_valid:
            entry.notes = f"config unreadable: {agent.config_error}"
        entries.append(entry)
        logger.info(
            "Detected %s at %s (valid=%s, configured=%s).",
            agent.name,
            agent.config_path,
            agent.config_valid,
            agent.has_entry,
        )

    if not agents:
        fallback = manual_fallback(env)
        agents.append(fallback)
        entries.append(
            DetectEntry(
                client_name=fallback.name,
                installed=False,
                config_format=fallback.config_format,
                config_path=fallback.config_path,
                can_write=can_write_path(Path(fallback.config_path)),
                notes="manual configuration required",
            )
        )
        logger.info("No agent configs found; using manual fallback at %s.", fallback.config_path)
        return DetectResult(agents=agents, entries=entries, is_manual_fallback=True)

    return DetectResult(agents=agents, entries=entries)


def inspect_config(agent: Agent) -> None:
    """Refresh existence/validity/registration flags from the file on disk."""

    path = Path(agent.config_path)
    agent.config_exists = path.exists()
    agent.config_error = ""
    if not agent.config_exists:
        agent.config_valid = False
        agent.has_entry = False
        return
    try:
        capability = format_for(agent.config_format)
        parsed = capability.parse(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ConfigParseError) as exc:
        agent.config_valid = False
        agent.config_error = str(exc)
        agent.has_entry = False
        return
    agent.config_valid = True
    agent.has_entry = capability.has_entry(parsed, agent.entries_key, agent.tool_key)


def config_has_entry(agent: Agent) -> bool:
    probe = Agent.from_dict(agent.to_dict())
    inspect_config(probe)
    return probe.has_entry


def manual_fallback(env: HostEnvironment) -> Agent:
    return Agent(
        id=MANUAL_AGENT_ID,
        name="Generic AI Agent",
        config_path=str(env.appdata / "Claude" / "claude_desktop_config.json"),
        config_format=STRUCTURED,
        entries_key="mcpServers",
        icon="puzzle",
        config_exists=False,
        config_valid=True,
        has_entry=False,
        status=STATUS_MANUAL,
    )


def agent_running(process_names: Iterable[str]) -> bool:
    """Whether any live process matches one of ``process_names`` (case-insensitive)."""

    wanted = {name.lower() for name in process_names if name}
    if not wanted:
        return False
    for proc in psutil.process_iter(["name"]):
        name = (proc.info.get("name") or "").lower()
        if name in wanted:
            return True
    return False


def can_write_path(path: Path) -> bool:
    """Check writability without creating anything on disk."""

    path = Path(path)
    if path.exists():
        return os.access(path, os.W_OK)
    parent = path.parent
    while not parent.exists() and parent != parent.parent:
        parent = parent.parent
    return os.access(parent, os.W_OK | os.X_OK)


def detect_report_path(root: Path) -> Path:
    return tool_dir(root) / DETECT_FILENAME


def write_detect_report(root: Path, result: DetectResult) -> Path:
    path = detect_report_path(root)
    write_json_atomic(
        path,
        {
            "generatedAtUtc": utc_timestamp(),
            "clients": [entry.to_dict() for entry in result.entries],
            "isManualFallback": result.is_manual_fallback,
        },
    )
    return path


def mark_configured_in_report(root: Path, selected: Sequence[str]) -> None:
    """Flag freshly connected clients as configured in the last detection report."""

    path = detect_report_path(root)
    report = read_json(path)
    if not isinstance(report, dict):
        return
    wanted = {item.lower() for item in selected}
    for client in report.get("clients") or []:
        name = str(client.get("clientName", ""))
        if name.lower() in wanted or agent_id(name) in wanted:
            client["alreadyConfigured"] = True
    write_json_atomic(path, report)


def _first_existing(paths: Iterable[Path]) -> Optional[Path]:
    for candidate in paths:
        if str(candidate) and Path(candidate).exists():
            return Path(candidate)
    return None


def _agent_from_signature(signature: AgentSignature, config_path: Path) -> Agent:
    return Agent(
        id=signature.id,
        name=signature.name,
        config_path=str(config_path),
        config_format=signature.config_format,
        entries_key=signature.entries_key,
        tool_key=signature.tool_key,
        process_names=list(signature.process_names),
        restart_message=signature.restart_message,
        icon=signature.icon,
        status=STATUS_DETECTED,
    )


__all__ = [
    "Agent",
    "DetectEntry",
    "DetectResult",
    "MANUAL_AGENT_ID",
    "STATUS_CONFIGURED",
    "STATUS_DETECTED",
    "STATUS_MANUAL",
    "agent_running",
    "can_write_path",
    "config_has_entry",
    "detect_agents",
    "detect_report_path",
    "inspect_config",
    "manual_fallback",
    "mark_configured_in_report",
    "write_detect_report",
]
