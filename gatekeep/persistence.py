"""Atomic file helpers for setup artifacts."""

from __future__ import annotations

from datetime import datetime, timezone
import json
import os
from pathlib import Path
import tempfile
from typing import Any, Mapping, Optional

TOOL_DIR_NAME = ".gatekeep"
UTF8_BOM = b"\xef\xbb\xbf"


def tool_dir(root: Path) -> Path:
    """Directory holding every artifact gatekeep writes for a workspace."""

    return Path(root) / TOOL_DIR_NAME


def utc_timestamp(now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def strip_bom(data: bytes) -> bytes:
    if data.startswith(UTF8_BOM):
        return data[len(UTF8_BOM):]
    return data


def fsync_dir(path: Path) -> None:
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def write_atomic(path: Path, data: bytes) -> None:
    """Replace ``path`` with ``data`` so readers see the old or the new file.

    The payload goes to a uniquely named temp file in the destination
    directory, is forced to disk, and is then renamed over the target. The
    temp file is removed if anything fails along the way.
    """

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=".tmp",
            delete=False,
        ) as tmp:
            temp_path = Path(tmp.name)
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(str(temp_path), str(path))
        temp_path = None
        fsync_dir(path.parent)
    finally:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink(missing_ok=True)


def write_text_atomic(path: Path, text: str) -> None:
    write_atomic(path, text.encode("utf-8"))


def write_json_atomic(path: Path, payload: Any) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    write_text_atomic(path, text)


def read_json(path: Path) -> Any:
    """Return decoded JSON from ``path`` or ``None`` when it does not exist."""

    try:
        raw = Path(path).read_bytes()
    except FileNotFoundError:
        return None
    return json.loads(strip_bom(raw).decode("utf-8"))


def copy_file_atomic(source: Path, destination: Path) -> bytes:
    """Copy ``source`` to ``destination`` atomically and return the copied bytes."""

    data = Path(source).read_bytes()
    write_atomic(destination, data)
    return data


def append_json_line(path: Path, record: Mapping[str, Any]) -> None:
    """Append one JSON object as a line; existing lines are never rewritten."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    line = json.dumps(dict(record), ensure_ascii=False, sort_keys=False)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(line + "\n")
        handle.flush()
        os.fsync(handle.fileno())


__all__ = [
    "TOOL_DIR_NAME",
    "append_json_line",
    "copy_file_atomic",
    "read_json",
    "strip_bom",
    "tool_dir",
    "utc_timestamp",
    "write_atomic",
    "write_json_atomic",
    "write_text_atomic",
]
