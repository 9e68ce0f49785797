"""The persisted setup document and its on-disk representation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .agents.detect import Agent
from .errors import StateError, StateVersionError
from .persistence import read_json, tool_dir, write_json_atomic

STATE_VERSION = "1.0"
SUPPORTED_VERSIONS: Sequence[str] = (STATE_VERSION,)
SETUP_FILENAME = "setup.json"

STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_FAILED = "FAILED"
STATUS_COMPLETE = "COMPLETE"


class StepId(str, Enum):
    SELECT_TARGET = "S1"
    DETECT_AGENTS = "S2"
    CONNECT_AGENTS = "S3"
    VALIDATE_AGENTS = "S4"
    CLASSIFY = "S5"
    SCAN = "S6"
    FIX_LOOP = "S7"
    FINAL_VERIFY = "S8"

    @property
    def label(self) -> str:
        return STEP_LABELS[self]

    @classmethod
    def parse(cls, raw: str) -> "StepId":
        """Accept an id (``S3``), a label (``ConnectAgents``), or a slug (``connect-agents``)."""

        text = str(raw).strip()
        squashed = text.replace("-", "").replace("_", "").lower()
        for step in cls:
            if text.upper() == step.value or squashed == step.label.lower():
                return step
        raise ValueError(f"unknown step: {raw}")


STEP_LABELS: Dict[StepId, str] = {
    StepId.SELECT_TARGET: "SelectTarget",
    StepId.DETECT_AGENTS: "DetectAgents",
    StepId.CONNECT_AGENTS: "ConnectAgents",
    StepId.VALIDATE_AGENTS: "ValidateAgents",
    StepId.CLASSIFY: "Classify",
    StepId.SCAN: "Scan",
    StepId.FIX_LOOP: "FixLoop",
    StepId.FINAL_VERIFY: "FinalVerify",
}

STEP_ORDER: Sequence[StepId] = tuple(StepId)


@dataclass
class Target:
    type: str = ""
    path: str = ""
    repo_url: str = ""
    ref: str = ""
    subdir: str = ""
    workspace_root: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type}
        if self.path:
            payload["path"] = self.path
        if self.repo_url:
            payload["repoUrl"] = self.repo_url
        if self.ref:
            payload["ref"] = self.ref
        if self.subdir:
            payload["subdir"] = self.subdir
        if self.workspace_root:
            payload["workspaceRoot"] = self.workspace_root
        return payload

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "Target":
        raw = raw or {}
        return cls(
            type=str(raw.get("type", "")),
            path=str(raw.get("path", "")),
            repo_url=str(raw.get("repoUrl", "")),
            ref=str(raw.get("ref", "")),
            subdir=str(raw.get("subdir", "")),
            workspace_root=str(raw.get("workspaceRoot", "")),
        )


@dataclass
class Action:
    name: str = ""
    vectors_path: str = ""
    fix_dry_run: bool = False
    fix_apply: bool = False
    watch_path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.name:
            payload["name"] = self.name
        if self.vectors_path:
            payload["vectorsPath"] = self.vectors_path
        if self.fix_dry_run:
            payload["fixDryRun"] = True
        if self.fix_apply:
            payload["fixApply"] = True
        if self.watch_path:
            payload["watchPath"] = self.watch_path
        return payload

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "Action":
        raw = raw or {}
        return cls(
            name=str(raw.get("name", "")),
            vectors_path=str(raw.get("vectorsPath", "")),
            fix_dry_run=bool(raw.get("fixDryRun", False)),
            fix_apply=bool(raw.get("fixApply", False)),
            watch_path=str(raw.get("watchPath", "")),
        )


@dataclass
class SetupState:
    """Single source of truth for setup progress in one workspace."""

    version: str = STATE_VERSION
    status: str = ""
    current_step: str = ""
    steps_completed: List[str] = field(default_factory=list)
    target: Target = field(default_factory=Target)
    mode: str = ""
    selected_agents: List[str] = field(default_factory=list)
    detected_agents: List[Agent] = field(default_factory=list)
    action: Action = field(default_factory=Action)
    updated_at_utc: str = ""
    last_error: str = ""
    last_error_step: str = ""
    resume_available: bool = False

    def mark_completed(self, step: StepId) -> None:
        self.current_step = step.value
        if step.value not in self.steps_completed:
            self.steps_completed.append(step.value)

    def resume_index(self) -> int:
        """Index into STEP_ORDER of the first step that has not succeeded yet."""

        if not self.current_step:
            return 0
        for index, step in enumerate(STEP_ORDER):
            if step.value == self.current_step:
                return index + 1
        return 0

    def workspace_root(self) -> str:
        return self.target.workspace_root or self.target.path

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "version": self.version,
            "status": self.status,
            "currentStep": self.current_step,
            "stepsCompleted": list(self.steps_completed),
            "target": self.target.to_dict(),
        }
        if self.mode:
            payload["mode"] = self.mode
        if self.selected_agents:
            payload["selectedAgents"] = list(self.selected_agents)
        if self.detected_agents:
            payload["detectedAgents"] = [agent.to_dict() for agent in self.detected_agents]
        action = self.action.to_dict()
        if action:
            payload["action"] = action
        payload["updatedAtUtc"] = self.updated_at_utc
        if self.last_error:
            payload["lastError"] = self.last_error
        if self.last_error_step:
            payload["lastErrorStep"] = self.last_error_step
        payload["resumeAvailable"] = self.resume_available
        return payload

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SetupState":
        version = raw.get("version")
        if version not in SUPPORTED_VERSIONS:
            raise StateVersionError(f"unsupported setup state version: {version!r}")
        completed: List[str] = []
        for item in raw.get("stepsCompleted") or []:
            text = str(item)
            if text not in completed:
                completed.append(text)
        return cls(
            version=str(version),
            status=str(raw.get("status", "")),
            current_step=str(raw.get("currentStep", "") or ""),
            steps_completed=completed,
            target=Target.from_dict(raw.get("target")),
            mode=str(raw.get("mode", "") or ""),
            selected_agents=[str(item) for item in raw.get("selectedAgents") or []],
            detected_agents=[Agent.from_dict(item) for item in raw.get("detectedAgents") or []],
            action=Action.from_dict(raw.get("action")),
            updated_at_utc=str(raw.get("updatedAtUtc", "")),
            last_error=str(raw.get("lastError", "") or ""),
            last_error_step=str(raw.get("lastErrorStep", "") or ""),
            resume_available=bool(raw.get("resumeAvailable", False)),
        )


def setup_path(root: Path) -> Path:
    return tool_dir(root) / SETUP_FILENAME


def load_state(root: Path) -> SetupState:
    """Load the setup document, returning a fresh state when none exists yet."""

    path = setup_path(root)
    try:
        raw = read_json(path)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise StateError(f"unable to decode {path}: {exc}") from exc
    if raw is None:
        return SetupState()
    if not isinstance(raw, dict):
        raise StateError(f"{path} does not contain a JSON object")
    return SetupState.from_dict(raw)


def save_state(root: Path, state: SetupState) -> None:
    write_json_atomic(setup_path(root), state.to_dict())


__all__ = [
    "Action",
    "STATE_VERSION",
    "STATUS_COMPLETE",
    "STATUS_FAILED",
    "STATUS_IN_PROGRESS",
    "STEP_ORDER",
    "SetupState",
    "StepId",
    "Target",
    "load_state",
    "save_state",
    "setup_path",
]
