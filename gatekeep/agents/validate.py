"""Post-connect checks for selected agents."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import ExternalCommandError
from ..persistence import tool_dir, utc_timestamp, write_json_atomic
from ..process import DEFAULT_SELFTEST_TIMEOUT, MISSING_COMMAND_EXIT, CommandResult, run_selftest
from .detect import Agent, agent_running, config_has_entry

logger = logging.getLogger("gatekeep.agents.validate")

VALIDATE_FILENAME = "agent-validate.json"
SKIP_SELFTEST_ENV = "GATEKEEP_SKIP_SELFTEST"
SELFTEST_SKIPPED = "skipped"


@dataclass
class ValidationResult:
    agent_id: str
    agent_name: str
    config_path: str
    config_has_entry: bool
    binary_path: str
    binary_exists: bool
    agent_running: bool
    restart_message: str
    selftest: Union[str, Dict[str, Any]]

    @property
    def selftest_failed(self) -> bool:
        return isinstance(self.selftest, dict) and not self.selftest.get("ok", False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "agentName": self.agent_name,
            "configPath": self.config_path,
            "configHasEntry": self.config_has_entry,
            "binaryPath": self.binary_path,
            "binaryExists": self.binary_exists,
            "agentRunning": self.agent_running,
            "restartMessage": self.restart_message,
            "selftest": self.selftest,
        }


def selftest_skipped(
    requested: bool = False,
    configured: bool = False,
    env: Optional[Mapping[str, str]] = None,
) -> bool:
    source = env if env is not None else os.environ
    return requested or configured or source.get(SKIP_SELFTEST_ENV, "").strip() == "1"


def validate_report_path(root: Path) -> Path:
    return tool_dir(root) / VALIDATE_FILENAME


def validate_agents(
    root: Path,
    agents: Sequence[Agent],
    binary: str,
    *,
    skip_selftest: bool = False,
    timeout: float = DEFAULT_SELFTEST_TIMEOUT,
    now: Optional[datetime] = None,
) -> List[ValidationResult]:
    """Check each agent, persist the batch, then fail if any self-test failed."""

    results: List[ValidationResult] = []
    for agent in agents:
        binary_exists = bool(binary) and Path(binary).exists()
        if skip_selftest:
            selftest: Union[str, Dict[str, Any]] = SELFTEST_SKIPPED
        else:
            selftest = _selftest_payload(binary, timeout)
        results.append(
            ValidationResult(
                agent_id=agent.id,
                agent_name=agent.name,
                config_path=agent.config_path,
                config_has_entry=config_has_entry(agent),
                binary_path=binary,
                binary_exists=binary_exists,
                agent_running=agent_running(agent.process_names),
                restart_message=agent.restart_message,
                selftest=selftest,
            )
        )

    write_json_atomic(
        validate_report_path(root),
        {
            "validatedAtUtc": utc_timestamp(now),
            "results": [result.to_dict() for result in results],
        },
    )

    failed = [result for result in results if result.selftest_failed]
    if failed:
        first: Dict[str, Any] = failed[0].selftest  # type: ignore[assignment]
        reason = "timed out" if first.get("timedOut") else f"exited {first.get('returncode')}"
        raise ExternalCommandError(
            f"self-test {reason} for {', '.join(result.agent_name for result in failed)}",
            output=str(first.get("output", "")),
            returncode=first.get("returncode"),
            timed_out=bool(first.get("timedOut")),
        )
    return results


def _selftest_payload(binary: str, timeout: float) -> Dict[str, Any]:
    if not binary:
        result = CommandResult(
            command=[],
            returncode=MISSING_COMMAND_EXIT,
            output="binary path is not set",
        )
    else:
        result = run_selftest(Path(binary), timeout)
    payload = result.to_dict()
    payload.pop("duration", None)
    logger.info("Self-test for %s: ok=%s", binary or "(unset)", payload["ok"])
    return payload


__all__ = [
    "SELFTEST_SKIPPED",
    "SKIP_SELFTEST_ENV",
    "ValidationResult",
    "selftest_skipped",
    "validate_agents",
    "validate_report_path",
]
