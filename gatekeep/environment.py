"""Host path lookups, resolved once from an injectable environment mapping."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping, Optional


@dataclass(frozen=True)
class HostEnvironment:
    """Home/app-data style directories used to locate agent configs."""

    home: Path
    appdata: Path
    userprofile: Path
    codex_home: Path
    desktop: Path

    @classmethod
    def from_environ(
        cls,
        env: Optional[Mapping[str, str]] = None,
        *,
        home: Optional[Path] = None,
    ) -> "HostEnvironment":
        source = env if env is not None else os.environ

        def _path(name: str) -> Optional[Path]:
            raw = (source.get(name) or "").strip()
            return Path(raw).expanduser() if raw else None

        resolved_home = home or _path("HOME") or _path("USERPROFILE") or Path.home()
        userprofile = _path("USERPROFILE") or resolved_home
        appdata = _path("APPDATA") or resolved_home / "AppData" / "Roaming"
        codex_home = _path("CODEX_HOME") or userprofile / ".codex"
        return cls(
            home=resolved_home,
            appdata=appdata,
            userprofile=userprofile,
            codex_home=codex_home,
            desktop=userprofile / "Desktop",
        )

    @classmethod
    def for_home(cls, home: Path) -> "HostEnvironment":
        """Environment rooted entirely under ``home`` (no process env lookups)."""

        return cls.from_environ({}, home=Path(home))


__all__ = ["HostEnvironment"]
