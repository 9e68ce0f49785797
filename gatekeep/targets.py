"""Resolve the workspace a run operates on: a local directory or a cached clone."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
import re
import shutil
from typing import Any, Dict, List, Mapping, Optional

from .errors import CloneError, ValidationError
from .persistence import read_json, tool_dir, utc_timestamp, write_json_atomic
from .process import run_bounded
from .state import SetupState, Target

logger = logging.getLogger("gatekeep.targets")

WORKSPACES_FILENAME = "workspaces.json"
WORKSPACES_DIRNAME = "workspaces"
DEFAULT_CLONE_TIMEOUT = 120.0
TARGET_LOCAL = "local"
TARGET_GIT = "git"

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class WorkspaceEntry:
    workspace_id: str
    repo_url: str
    path: str
    ref: str = ""
    subdir: str = ""
    added_at_utc: str = ""
    updated_at_utc: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "workspaceId": self.workspace_id,
            "repoUrl": self.repo_url,
        }
        if self.ref:
            payload["ref"] = self.ref
        if self.subdir:
            payload["subdir"] = self.subdir
        payload.update(
            {
                "path": self.path,
                "addedAtUtc": self.added_at_utc,
                "updatedAtUtc": self.updated_at_utc,
            }
        )
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "WorkspaceEntry":
        return cls(
            workspace_id=str(raw.get("workspaceId", "")),
            repo_url=str(raw.get("repoUrl", "")),
            path=str(raw.get("path", "")),
            ref=str(raw.get("ref", "") or ""),
            subdir=str(raw.get("subdir", "") or ""),
            added_at_utc=str(raw.get("addedAtUtc", "")),
            updated_at_utc=str(raw.get("updatedAtUtc", "")),
        )


@dataclass
class TargetRequest:
    """What the caller asked for; all fields optional."""

    path: str = ""
    repo_url: str = ""
    ref: str = ""
    subdir: str = ""

    @property
    def empty(self) -> bool:
        return not self.path and not self.repo_url


def sanitize_workspace_id(repo_url: str, ref: str = "", subdir: str = "") -> str:
    base = repo_url
    if ref:
        base += "@" + ref
    if subdir:
        base += ":" + subdir
    return _UNSAFE_ID_CHARS.sub("_", base)


def workspaces_path(root: Path) -> Path:
    return tool_dir(root) / WORKSPACES_FILENAME


def clone_path_for(root: Path, workspace_id: str) -> Path:
    return tool_dir(root) / WORKSPACES_DIRNAME / workspace_id


def select_target(
    root: Path,
    request: TargetRequest,
    state: SetupState,
    *,
    clone_timeout: float = DEFAULT_CLONE_TIMEOUT,
) -> Target:
    """Resolve ``request`` into ``state.target`` and return it."""

    if request.empty:
        if state.target.workspace_root:
            logger.info("Reusing workspace root %s.", state.target.workspace_root)
            return state.target
        raise ValidationError("target is required")

    if request.path:
        workspace = resolve_local(request.path)
        state.target = Target(type=TARGET_LOCAL, path=str(workspace), workspace_root=str(workspace))
        logger.info("Selected local target %s.", workspace)
        return state.target

    workspace = resolve_remote(root, request, clone_timeout=clone_timeout)
    state.target = Target(
        type=TARGET_GIT,
        repo_url=request.repo_url,
        ref=request.ref,
        subdir=request.subdir,
        workspace_root=str(workspace),
    )
    return state.target


def resolve_local(raw_path: str) -> Path:
    workspace = Path(raw_path).expanduser().resolve()
    if not workspace.exists():
        raise ValidationError(f"target does not exist: {workspace}")
    if not workspace.is_dir():
        raise ValidationError(f"target is not a directory: {workspace}")
    if not os.access(workspace, os.R_OK | os.X_OK):
        raise ValidationError(f"target is not readable: {workspace}")
    return workspace


def resolve_remote(
    root: Path,
    request: TargetRequest,
    *,
    clone_timeout: float = DEFAULT_CLONE_TIMEOUT,
) -> Path:
    """Clone ``request`` once per distinct reference and return its workspace root."""

    workspace_id = sanitize_workspace_id(request.repo_url, request.ref, request.subdir)
    clone_dir = clone_path_for(root, workspace_id).resolve()
    if clone_dir.exists():
        logger.info("Reusing existing clone %s.", clone_dir)
    else:
        clone_repo(request.repo_url, request.ref, clone_dir, timeout=clone_timeout)

    workspace = clone_dir
    if request.subdir:
        workspace = (clone_dir / request.subdir).resolve()
        try:
            workspace.relative_to(clone_dir)
        except ValueError:
            raise ValidationError(f"subdir escapes the clone: {request.subdir}") from None
        if not workspace.is_dir():
            raise ValidationError(f"subdir not found in clone: {request.subdir}")

    record_workspace(
        root,
        WorkspaceEntry(
            workspace_id=workspace_id,
            repo_url=request.repo_url,
            ref=request.ref,
            subdir=request.subdir,
            path=str(workspace),
        ),
    )
    return workspace


def clone_repo(repo_url: str, ref: str, destination: Path, *, timeout: float) -> None:
    """Shallow-clone ``repo_url`` into ``destination``; no partial clone survives failure."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    command: List[str] = ["git", "clone", "--depth", "1"]
    if ref:
        command.extend(["--branch", ref])
    command.extend([repo_url, str(destination)])

    logger.info("Cloning %s into %s.", repo_url, destination)
    result = run_bounded(command, timeout)
    if result.ok:
        return
    if destination.exists():
        shutil.rmtree(destination, ignore_errors=True)
    if result.timed_out:
        raise CloneError(f"git clone timed out after {timeout:g}s for {repo_url}")
    raise CloneError(f"git clone failed for {repo_url}: {result.output.strip()}")


def load_workspaces(root: Path) -> List[WorkspaceEntry]:
    raw = read_json(workspaces_path(root))
    if not isinstance(raw, list):
        return []
    return [WorkspaceEntry.from_dict(item) for item in raw if isinstance(item, dict)]


def record_workspace(root: Path, entry: WorkspaceEntry, *, now: Optional[str] = None) -> None:
    """Merge ``entry`` into the catalog by workspace id, keeping its first-seen time."""

    stamp = now or utc_timestamp()
    entries = load_workspaces(root)
    for index, existing in enumerate(entries):
        if existing.workspace_id == entry.workspace_id:
            entry.added_at_utc = existing.added_at_utc or stamp
            entry.updated_at_utc = stamp
            entries[index] = entry
            break
    else:
        entry.added_at_utc = stamp
        entry.updated_at_utc = stamp
        entries.append(entry)
    write_json_atomic(workspaces_path(root), [item.to_dict() for item in entries])


__all__ = [
    "TargetRequest",
    "WorkspaceEntry",
    "clone_path_for",
    "clone_repo",
    "load_workspaces",
    "record_workspace",
    "resolve_local",
    "resolve_remote",
    "sanitize_workspace_id",
    "select_target",
    "workspaces_path",
]
