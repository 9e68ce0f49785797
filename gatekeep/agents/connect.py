"""Back up agent configs and merge this tool's entry into them."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import shutil
from typing import Any, Dict, List, Optional, Sequence

from ..errors import BackupError, PreconditionError, ValidationError
from ..persistence import (
    append_json_line,
    copy_file_atomic,
    tool_dir,
    utc_timestamp,
    write_text_atomic,
)
from .detect import STATUS_CONFIGURED, Agent, mark_configured_in_report
from .formats import format_for
from .signatures import SERVE_ARGS, TOOL_KEY

logger = logging.getLogger("gatekeep.agents.connect")

CONNECT_LOG_FILENAME = "agent-connect.log"
BACKUP_STAMP_FORMAT = "%Y%m%d_%H%M%S"
STATUS_OK = "OK"
STATUS_FAILED = "FAILED"


@dataclass
class BackupPaths:
    sibling: Path
    archived: Path


def select_agents(
    agents: Sequence[Agent],
    clients: Sequence[str] = (),
    all_clients: bool = False,
) -> List[Agent]:
    """Resolve which detected agents to act on.

    Explicit ids win, then ``all_clients``, then the single detected agent.
    Anything else is ambiguous and rejected.
    """

    wanted = [item.strip() for item in clients if item and item.strip()]
    if wanted:
        selected: List[Agent] = []
        for item in wanted:
            agent = find_agent(agents, item)
            if agent is None:
                raise ValidationError(f"unknown agent: {item}")
            if agent not in selected:
                selected.append(agent)
        return selected
    if all_clients and agents:
        return list(agents)
    if len(agents) == 1:
        return [agents[0]]
    raise ValidationError("no agent selected")


def find_agent(agents: Sequence[Agent], key: str) -> Optional[Agent]:
    lowered = key.strip().lower()
    for agent in agents:
        if agent.id.lower() == lowered or agent.name.lower() == lowered:
            return agent
    return None


def resolve_binary(
    option: str = "",
    context_value: str = "",
    configured: str = "",
    *,
    required: bool = True,
) -> str:
    """Pick the managed binary path: option, context, config, then ``PATH``."""

    for candidate in (option, context_value, configured):
        if candidate and candidate.strip():
            path = candidate.strip()
            break
    else:
        path = shutil.which(TOOL_KEY) or ""

    if not required:
        return path
    if not path:
        raise PreconditionError("binary path is required")
    if not os.path.isabs(path):
        raise PreconditionError("binary path must be absolute")
    return path


def build_entry(binary: str) -> Dict[str, Any]:
    return {"command": binary, "args": list(SERVE_ARGS)}


def connect_log_path(root: Path) -> Path:
    return tool_dir(root) / CONNECT_LOG_FILENAME


def backup_config(root: Path, agent: Agent, now: datetime) -> BackupPaths:
    """Create both backups of an existing config and verify them byte for byte."""

    source = Path(agent.config_path)
    stamp = now.astimezone(timezone.utc).strftime(BACKUP_STAMP_FORMAT)
    sibling = _unused_path(source.with_name(f"{source.name}.bak.{stamp}"))
    archived = _unused_path(tool_dir(root) / "backups" / "agent-config" / agent.id / stamp / source.name)

    try:
        original = source.read_bytes()
        for destination in (sibling, archived):
            copied = copy_file_atomic(source, destination)
            if copied != original or destination.read_bytes() != original:
                raise BackupError(f"backup verification failed for {destination}")
    except OSError as exc:
        raise BackupError(f"backup failed for {source}: {exc}") from exc

    logger.info("Backed up %s to %s and %s.", source, sibling, archived)
    return BackupPaths(sibling=sibling, archived=archived)


def _unused_path(path: Path) -> Path:
    """``path`` itself, or ``path.1``, ``path.2`` and so on when earlier backups hold the name."""

    candidate = path
    counter = 0
    while candidate.exists():
        counter += 1
        candidate = path.with_name(f"{path.name}.{counter}")
    return candidate


def write_agent_config(agent: Agent, binary: str) -> None:
    path = Path(agent.config_path)
    existing: Optional[str] = None
    if path.exists():
        existing = path.read_text(encoding="utf-8")
    capability = format_for(agent.config_format)
    updated = capability.write_entry(
        existing,
        agent.entries_key,
        agent.tool_key,
        build_entry(binary),
    )
    write_text_atomic(path, updated)


def connect_agents(
    root: Path,
    agents: Sequence[Agent],
    binary: str,
    *,
    config_override: str = "",
    now: Optional[datetime] = None,
) -> List[Agent]:
    """Register this tool in each agent's config, one audited attempt per agent.

    The first failure stops the step; agents after it are left untouched.
    """

    log_path = connect_log_path(root)
    moment = now or datetime.now(timezone.utc)
    connected: List[Agent] = []

    for agent in agents:
        if config_override:
            agent.config_path = str(Path(config_override).expanduser())
        agent.config_exists = Path(agent.config_path).exists()

        record: Dict[str, Any] = {
            "timestampUtc": utc_timestamp(moment),
            "agentId": agent.id,
            "agentName": agent.name,
            "configPath": agent.config_path,
            "backupPath": "",
            "siblingBackupPath": "",
        }
        try:
            if agent.config_exists:
                backups = backup_config(root, agent, moment)
                record["backupPath"] = str(backups.archived)
                record["siblingBackupPath"] = str(backups.sibling)
            write_agent_config(agent, binary)
        except Exception as exc:
            record.update({"status": STATUS_FAILED, "error": str(exc)})
            append_json_line(log_path, record)
            logger.error("Connecting %s failed: %s", agent.name, exc)
            raise

        record.update({"status": STATUS_OK, "error": ""})
        append_json_line(log_path, record)
        agent.config_exists = True
        agent.config_valid = True
        agent.config_error = ""
        agent.has_entry = True
        agent.status = STATUS_CONFIGURED
        connected.append(agent)
        logger.info("Connected %s via %s.", agent.name, agent.config_path)

    try:
        mark_configured_in_report(root, [agent.id for agent in connected])
    except (OSError, ValueError) as exc:
        logger.warning("Unable to update detection report: %s", exc)
    return connected


__all__ = [
    "BackupPaths",
    "CONNECT_LOG_FILENAME",
    "backup_config",
    "build_entry",
    "connect_agents",
    "connect_log_path",
    "find_agent",
    "resolve_binary",
    "select_agents",
    "write_agent_config",
]
