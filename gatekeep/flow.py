"""The resumable setup state machine.

``run`` replays the fixed step order starting one past the last step that
succeeded. ``run_step`` executes exactly one step and always persists the
outcome, success or failure, before returning or re-raising. Steps are
written to be safely re-run from scratch; no partial progress inside a step
is checkpointed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import sys
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .agents.connect import connect_agents, resolve_binary, select_agents
from .agents.detect import Agent, detect_agents, write_detect_report
from .agents.signatures import AgentSignature, default_signatures, filter_signatures
from .agents.validate import selftest_skipped, validate_agents
from .classify import classify, resolve_mode
from .configuration import ConfigurationBundle
from .environment import HostEnvironment
from .errors import FixLoopExhausted, ValidationError
from .persistence import read_json, tool_dir, utc_timestamp, write_json_atomic, write_text_atomic
from .runner import DEFAULT_RUNNER_TIMEOUT, Runner, validate_action_name
from .state import (
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_IN_PROGRESS,
    STEP_ORDER,
    Action,
    SetupState,
    StepId,
    load_state,
    save_state,
)
from .targets import DEFAULT_CLONE_TIMEOUT, TargetRequest, select_target

logger = logging.getLogger("gatekeep.flow")

DEFAULT_MAX_FIX_ATTEMPTS = 3
REPORT_FILENAME = "report.json"
CHECKLIST_FILENAME = "checklist.json"
SHORTCUT_FILENAME = "shortcut.json"
REPORT_PHASES: Sequence[str] = ("phase1Status", "phase2Status", "phase3Status", "phase4Status")
VERIFYING_ACTIONS: Sequence[str] = ("verify", "fix", "fix-loop")
SHORTCUT_TITLE = "Gatekeep Report"

CHECKLIST_ITEMS: Sequence[str] = (
    "Boundary rules (contracts-only / no-leak)",
    "Gateway mandatory + wrapper enforcement + policy call",
    "Registry correctness + ID namespaces",
    "Atomic ingestion checks",
    "Evidence signing checks",
    "UI registry coverage",
    "Identifier contract + UI identifier display enforcement",
    "Phase 1-4 rule groups",
)


@dataclass
class Options:
    """Per-invocation inputs; empty values defer to persisted state or config."""

    target_path: str = ""
    repo_url: str = ""
    ref: str = ""
    subdir: str = ""
    clients: List[str] = field(default_factory=list)
    all_clients: bool = False
    config_path: str = ""
    binary_path: str = ""
    mode: str = ""
    max_fix_attempts: int = 0
    action: Action = field(default_factory=Action)
    skip_selftest: bool = False

    def target_request(self) -> TargetRequest:
        return TargetRequest(
            path=self.target_path,
            repo_url=self.repo_url,
            ref=self.ref,
            subdir=self.subdir,
        )


@dataclass
class SetupSettings:
    max_fix_attempts: int = DEFAULT_MAX_FIX_ATTEMPTS
    skip_selftest: bool = False
    selftest_timeout: float = 5.0
    doctor_timeout: float = 30.0
    clone_timeout: float = DEFAULT_CLONE_TIMEOUT
    binary_path: str = ""
    runner_timeout: float = DEFAULT_RUNNER_TIMEOUT
    agents_enabled: List[str] = field(default_factory=list)
    agents_disabled: List[str] = field(default_factory=list)

    @classmethod
    def from_bundle(cls, bundle: ConfigurationBundle) -> "SetupSettings":
        merged = bundle.merged or {}
        setup_cfg = merged.get("setup") or {}
        runner_cfg = merged.get("runner") or {}
        agents_cfg = merged.get("agents") or {}
        defaults = cls()
        return cls(
            max_fix_attempts=int(
                _positive(setup_cfg.get("max_fix_attempts"), defaults.max_fix_attempts)
            ),
            skip_selftest=bool(setup_cfg.get("skip_selftest", False)),
            selftest_timeout=_positive(setup_cfg.get("selftest_timeout"), defaults.selftest_timeout),
            doctor_timeout=_positive(setup_cfg.get("doctor_timeout"), defaults.doctor_timeout),
            clone_timeout=_positive(setup_cfg.get("clone_timeout"), defaults.clone_timeout),
            binary_path=str(setup_cfg.get("binary_path") or ""),
            runner_timeout=_positive(runner_cfg.get("timeout"), defaults.runner_timeout),
            agents_enabled=[str(item) for item in agents_cfg.get("enabled") or []],
            agents_disabled=[str(item) for item in agents_cfg.get("disabled") or []],
        )


def _positive(value: Any, default: float) -> float:
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class FlowContext:
    """Process-level collaborators shared by every step of one run."""

    root: Path
    env: HostEnvironment
    settings: SetupSettings = field(default_factory=SetupSettings)
    binary_path: str = ""
    environ: Mapping[str, str] = field(default_factory=dict)
    signatures: Optional[Sequence[AgentSignature]] = None
    now: Callable[[], datetime] = _utcnow
    platform: str = sys.platform

    @classmethod
    def from_bundle(
        cls,
        bundle: ConfigurationBundle,
        *,
        env: Optional[HostEnvironment] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "FlowContext":
        source = dict(environ if environ is not None else os.environ)
        return cls(
            root=Path(bundle.root),
            env=env or HostEnvironment.from_environ(source),
            settings=SetupSettings.from_bundle(bundle),
            environ=source,
        )

    def agent_signatures(self) -> List[AgentSignature]:
        catalog = self.signatures if self.signatures is not None else default_signatures(self.env)
        return filter_signatures(
            catalog,
            enabled=self.settings.agents_enabled,
            disabled=self.settings.agents_disabled,
        )


StepHandler = Callable[[FlowContext, Options, SetupState, Optional[Runner]], None]


def run(
    context: FlowContext,
    options: Options,
    runner: Optional[Runner] = None,
) -> SetupState:
    """Run every step after the last completed one; stop at the first failure."""

    state = load_state(context.root)
    start = state.resume_index()
    if start:
        logger.info("Resuming setup after %s.", state.current_step)
    for step in STEP_ORDER[start:]:
        try:
            run_step(context, step, options, runner)
        except Exception:
            logger.info("Setup stopped at %s (%s).", step.value, step.label)
            return load_state(context.root)

    state = load_state(context.root)
    state.status = STATUS_COMPLETE
    state.resume_available = False
    state.updated_at_utc = utc_timestamp(context.now())
    save_state(context.root, state)
    logger.info("Setup complete.")
    return state


def run_step(
    context: FlowContext,
    step: Union[StepId, str],
    options: Options,
    runner: Optional[Runner] = None,
) -> SetupState:
    """Execute one step and persist its outcome.

    Failures are recorded as ``status=FAILED`` with the message and step id,
    then re-raised. ``currentStep`` only moves on success.
    """

    step_id = _coerce_step(step)
    handler = STEP_HANDLERS[step_id]
    state = load_state(context.root)
    state.status = STATUS_IN_PROGRESS
    state.resume_available = True
    state.last_error = ""
    state.last_error_step = ""

    logger.info("Running %s (%s).", step_id.value, step_id.label, extra={"step": step_id.value})
    try:
        handler(context, options, state, runner)
    except Exception as exc:
        logger.exception("Step %s failed: %s", step_id.value, exc, extra={"step": step_id.value})
        state.status = STATUS_FAILED
        state.last_error = str(exc)
        state.last_error_step = step_id.value
        state.updated_at_utc = utc_timestamp(context.now())
        save_state(context.root, state)
        raise

    state.mark_completed(step_id)
    state.updated_at_utc = utc_timestamp(context.now())
    save_state(context.root, state)
    return state


def run_action(
    context: FlowContext,
    options: Options,
    runner: Optional[Runner] = None,
) -> SetupState:
    """Resolve the target, then run Scan (or FixLoop for ``fix-loop``)."""

    run_step(context, StepId.SELECT_TARGET, options, runner)
    if options.action.name == "fix-loop":
        return run_step(context, StepId.FIX_LOOP, options, runner)
    return run_step(context, StepId.SCAN, options, runner)


def _coerce_step(step: Union[StepId, str]) -> StepId:
    if isinstance(step, StepId):
        return step
    try:
        return StepId.parse(step)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None


def workspace_for(context: FlowContext, state: SetupState) -> Path:
    return Path(state.workspace_root() or context.root)


# -- step handlers ---------------------------------------------------------


def _select_target(context: FlowContext, options: Options, state: SetupState, _runner) -> None:
    select_target(
        context.root,
        options.target_request(),
        state,
        clone_timeout=context.settings.clone_timeout,
    )


def _detect(context: FlowContext, state: SetupState) -> List[Agent]:
    result = detect_agents(context.env, context.agent_signatures())
    write_detect_report(context.root, result)
    state.detected_agents = result.agents
    return result.agents


def _detect_agents(context: FlowContext, _options: Options, state: SetupState, _runner) -> None:
    agents = _detect(context, state)
    logger.info("Detected %d agent(s).", len(agents))


def _selected(context: FlowContext, options: Options, state: SetupState) -> List[Agent]:
    agents = state.detected_agents or _detect(context, state)
    selected = select_agents(agents, options.clients, options.all_clients)
    state.selected_agents = [agent.id for agent in selected]
    return selected


def _connect_agents(context: FlowContext, options: Options, state: SetupState, _runner) -> None:
    selected = _selected(context, options, state)
    binary = resolve_binary(
        options.binary_path,
        context.binary_path,
        context.settings.binary_path,
    )
    connect_agents(
        context.root,
        selected,
        binary,
        config_override=options.config_path,
        now=context.now(),
    )


def _validate_agents(context: FlowContext, options: Options, state: SetupState, _runner) -> None:
    selected = _selected(context, options, state)
    binary = resolve_binary(
        options.binary_path,
        context.binary_path,
        context.settings.binary_path,
        required=False,
    )
    skip = selftest_skipped(
        options.skip_selftest,
        context.settings.skip_selftest,
        context.environ,
    )
    validate_agents(
        context.root,
        selected,
        binary,
        skip_selftest=skip,
        timeout=context.settings.selftest_timeout,
        now=context.now(),
    )


def _classify(context: FlowContext, options: Options, state: SetupState, _runner) -> None:
    state.mode = resolve_mode(options.mode, state.mode)
    classify(workspace_for(context, state), state.mode)


def resolve_action(options: Options, state: SetupState) -> Action:
    """The option's action wins; otherwise the stored one is reused."""

    action = options.action if options.action.name else state.action
    action.name = validate_action_name(action.name)
    return action


def _scan(context: FlowContext, options: Options, state: SetupState, runner: Optional[Runner]) -> None:
    state.action = resolve_action(options, state)
    if runner is None:
        return
    workspace = workspace_for(context, state)
    write_checklist(workspace, context.now())
    action = state.action
    if action.name == "fix-loop":
        action = Action(name="scan")
    runner.run(action, workspace)


def _fix_loop(context: FlowContext, options: Options, state: SetupState, runner: Optional[Runner]) -> None:
    if options.action.name:
        state.action = resolve_action(options, state)
    if runner is None or state.action.name != "fix-loop":
        return
    attempts = options.max_fix_attempts
    if attempts <= 0:
        attempts = context.settings.max_fix_attempts or DEFAULT_MAX_FIX_ATTEMPTS
    workspace = workspace_for(context, state)

    for attempt in range(1, attempts + 1):
        logger.info("Fix loop attempt %d/%d.", attempt, attempts)
        for action in (
            Action(name="fix", fix_dry_run=True),
            Action(name="fix", fix_apply=True),
            Action(name="scan"),
            Action(name="verify"),
        ):
            try:
                runner.run(action, workspace)
            except Exception as exc:
                logger.warning("Fix loop %s failed on attempt %d: %s", action.name, attempt, exc)
        if report_pass(workspace):
            logger.info("Report passed after %d attempt(s).", attempt)
            return
    raise FixLoopExhausted(attempts)


def _final_verify(context: FlowContext, _options: Options, state: SetupState, runner: Optional[Runner]) -> None:
    if runner is None:
        return
    workspace = workspace_for(context, state)
    if state.action.name in VERIFYING_ACTIONS:
        runner.run(Action(name="verify"), workspace)
    try:
        create_shortcut(workspace, context.env, platform=context.platform, now=context.now())
    except Exception as exc:
        logger.warning("Shortcut creation skipped: %s", exc)


STEP_HANDLERS: Dict[StepId, StepHandler] = {
    StepId.SELECT_TARGET: _select_target,
    StepId.DETECT_AGENTS: _detect_agents,
    StepId.CONNECT_AGENTS: _connect_agents,
    StepId.VALIDATE_AGENTS: _validate_agents,
    StepId.CLASSIFY: _classify,
    StepId.SCAN: _scan,
    StepId.FIX_LOOP: _fix_loop,
    StepId.FINAL_VERIFY: _final_verify,
}


# -- artifacts -------------------------------------------------------------


def report_pass(workspace: Path) -> bool:
    """True when every phase in ``.gatekeep/report.json`` reads ``PASS``."""

    path = tool_dir(workspace) / REPORT_FILENAME
    try:
        report = read_json(path)
    except (OSError, ValueError) as exc:
        logger.debug("Unable to read %s: %s", path, exc)
        return False
    if not isinstance(report, dict):
        return False
    return all(report.get(phase) == "PASS" for phase in REPORT_PHASES)


def write_checklist(workspace: Path, now: Optional[datetime] = None) -> Path:
    path = tool_dir(workspace) / CHECKLIST_FILENAME
    write_json_atomic(
        path,
        {"generatedAtUtc": utc_timestamp(now), "items": list(CHECKLIST_ITEMS)},
    )
    return path


def create_shortcut(
    workspace: Path,
    env: HostEnvironment,
    *,
    platform: str = sys.platform,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """Drop a desktop link to the HTML report where the platform supports one."""

    report = (tool_dir(workspace) / "report.html").absolute()
    if platform.startswith("win"):
        env.desktop.mkdir(parents=True, exist_ok=True)
        shortcut = env.desktop / f"{SHORTCUT_TITLE}.url"
        content = f"[InternetShortcut]\nURL={report.as_uri()}\n"
    elif platform.startswith("linux"):
        desktop = env.home / "Desktop"
        if not desktop.is_dir():
            logger.debug("No desktop directory at %s; skipping shortcut.", desktop)
            return None
        shortcut = desktop / "gatekeep-report.desktop"
        content = (
            "[Desktop Entry]\n"
            "Type=Link\n"
            f"Name={SHORTCUT_TITLE}\n"
            f"URL={report.as_uri()}\n"
            "Icon=text-html\n"
        )
    else:
        return None

    write_text_atomic(shortcut, content)
    write_json_atomic(
        tool_dir(workspace) / SHORTCUT_FILENAME,
        {
            "createdAtUtc": utc_timestamp(now),
            "path": str(shortcut),
            "target": str(report),
        },
    )
    logger.info("Created shortcut %s.", shortcut)
    return shortcut


__all__ = [
    "CHECKLIST_ITEMS",
    "FlowContext",
    "Options",
    "STEP_HANDLERS",
    "SetupSettings",
    "create_shortcut",
    "report_pass",
    "resolve_action",
    "run",
    "run_action",
    "run_step",
    "workspace_for",
    "write_checklist",
]
