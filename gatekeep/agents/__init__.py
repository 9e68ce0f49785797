"""Agent signatures, detection, connection and validation."""

from __future__ import annotations

from .connect import connect_agents, resolve_binary, select_agents
from .detect import Agent, DetectResult, detect_agents, write_detect_report
from .signatures import AgentSignature, default_signatures, filter_signatures
from .validate import validate_agents

__all__ = [
    "Agent",
    "AgentSignature",
    "DetectResult",
    "connect_agents",
    "default_signatures",
    "detect_agents",
    "filter_signatures",
    "resolve_binary",
    "select_agents",
    "validate_agents",
    "write_detect_report",
]
