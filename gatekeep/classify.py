"""Project maturity classification and greenfield scaffolding."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .errors import ValidationError
from .persistence import tool_dir, write_json_atomic

logger = logging.getLogger("gatekeep.classify")

GREENFIELD = "greenfield"
BROWNFIELD = "brownfield"
MODES: Sequence[str] = (GREENFIELD, BROWNFIELD)

REGISTRY_CANDIDATES: Sequence[Path] = (
    Path("main-index.json"),
    Path(".gatekeep") / "main-index.json",
    Path("registry") / "main-index.json",
)
UI_REGISTRY = Path("ui") / "registry.json"
REGISTRY_VERSION = "1.0"


def resolve_mode(option: str, stored: str) -> str:
    """Explicit option wins over the persisted mode; either must be valid."""

    mode = (option or stored or "").strip().lower()
    if not mode:
        raise ValidationError("mode is required: greenfield or brownfield")
    if mode not in MODES:
        raise ValidationError(f"invalid mode: {mode}")
    return mode


def classify(workspace: Path, mode: str) -> List[Path]:
    """Apply ``mode`` to ``workspace`` and return any files it seeded."""

    if mode != GREENFIELD:
        logger.info("Brownfield project at %s; nothing to scaffold.", workspace)
        return []
    return scaffold_greenfield(workspace)


def scaffold_greenfield(workspace: Path) -> List[Path]:
    tool_dir(workspace).mkdir(parents=True, exist_ok=True)
    created: List[Path] = []
    registry = ensure_registry(workspace)
    if registry is not None:
        created.append(registry)
    ui_registry = ensure_ui_registry(workspace)
    if ui_registry is not None:
        created.append(ui_registry)
    return created


def ensure_registry(workspace: Path) -> Path | None:
    for candidate in REGISTRY_CANDIDATES:
        if (workspace / candidate).exists():
            logger.debug("Registry already present at %s.", workspace / candidate)
            return None
    path = workspace / REGISTRY_CANDIDATES[0]
    write_json_atomic(path, _registry_seed())
    logger.info("Seeded module registry at %s.", path)
    return path


def ensure_ui_registry(workspace: Path) -> Path | None:
    path = workspace / UI_REGISTRY
    if path.exists():
        return None
    write_json_atomic(path, {})
    logger.info("Seeded UI registry at %s.", path)
    return path


def _registry_seed() -> Dict[str, Any]:
    return {
        "version": REGISTRY_VERSION,
        "modules": [],
        "ids": {"API": {}, "SVC": {}, "DB": {}},
    }


__all__ = [
    "BROWNFIELD",
    "GREENFIELD",
    "MODES",
    "classify",
    "ensure_registry",
    "ensure_ui_registry",
    "resolve_mode",
    "scaffold_greenfield",
]
