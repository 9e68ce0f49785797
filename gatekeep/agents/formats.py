"""Per-format parse / lookup / merge-write capabilities for agent configs.

Each supported config format is a ``ConfigFormat`` record of three
functions, looked up by the signature's format tag:

* ``parse(text)`` returns a nested mapping or raises ``ConfigParseError``.
* ``has_entry(parsed, entries_key, tool_key)`` reports whether this tool is
  registered under the dotted ``entries_key``.
* ``write_entry(existing_text, entries_key, tool_key, entry)`` returns the new
  file text with only this tool's entry inserted or replaced.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import re
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional

import tomllib

from ..errors import ConfigParseError
from .signatures import SECTIONED, STRUCTURED

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class ConfigFormat:
    name: str
    parse: Callable[[str], Dict[str, Any]]
    has_entry: Callable[[Mapping[str, Any], str, str], bool]
    write_entry: Callable[[Optional[str], str, str, Mapping[str, Any]], str]


def get_nested(data: Mapping[str, Any], dotted_key: str) -> Any:
    current: Any = data
    for part in dotted_key.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def ensure_nested(data: MutableMapping[str, Any], dotted_key: str) -> MutableMapping[str, Any]:
    """Walk ``dotted_key`` creating empty objects where missing, never replacing values."""

    current = data
    walked: List[str] = []
    for part in dotted_key.split("."):
        walked.append(part)
        if part not in current:
            current[part] = {}
        child = current[part]
        if not isinstance(child, MutableMapping):
            raise ConfigParseError(f"'{'.'.join(walked)}' exists but is not an object")
        current = child
    return current


def has_entry(parsed: Mapping[str, Any], entries_key: str, tool_key: str) -> bool:
    entries = get_nested(parsed, entries_key)
    return isinstance(entries, Mapping) and tool_key in entries


# -- structured (JSON) -----------------------------------------------------


def parse_structured(text: str) -> Dict[str, Any]:
    """Parse JSON, retrying once with trailing commas removed."""

    text = text.lstrip("\ufeff")
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        repaired = _strip_trailing_commas(text)
        if repaired == text:
            raise ConfigParseError(f"invalid JSON: {exc}") from exc
        try:
            data = json.loads(repaired)
        except json.JSONDecodeError as retry_exc:
            raise ConfigParseError(f"invalid JSON: {retry_exc}") from retry_exc
    if not isinstance(data, dict):
        raise ConfigParseError("top-level JSON value must be an object")
    return data


def _strip_trailing_commas(text: str) -> str:
    """Drop commas that directly precede ``}`` or ``]``, leaving string literals alone."""

    out: List[str] = []
    in_string = False
    escaped = False
    length = len(text)
    for index, char in enumerate(text):
        if in_string:
            out.append(char)
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == ",":
            ahead = index + 1
            while ahead < length and text[ahead].isspace():
                ahead += 1
            if ahead < length and text[ahead] in "}]":
                continue
        out.append(char)
    return "".join(out)


def write_structured(
    existing_text: Optional[str],
    entries_key: str,
    tool_key: str,
    entry: Mapping[str, Any],
) -> str:
    data = parse_structured(existing_text) if existing_text else {}
    container = ensure_nested(data, entries_key)
    container[tool_key] = dict(entry)
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


# -- sectioned (TOML) ------------------------------------------------------


def parse_sectioned(text: str) -> Dict[str, Any]:
    try:
        return tomllib.loads(text.lstrip("\ufeff"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseError(f"invalid TOML: {exc}") from exc


def write_sectioned(
    existing_text: Optional[str],
    entries_key: str,
    tool_key: str,
    entry: Mapping[str, Any],
) -> str:
    """Replace or append the ``[entries_key.tool_key]`` table, leaving other text as-is."""

    text = (existing_text or "").lstrip("\ufeff")
    existing = parse_sectioned(text) if text.strip() else {}

    parts = entries_key.split(".") + [tool_key]
    section = _render_section(parts, entry)
    lines = text.splitlines(keepends=True)
    header = _header_pattern(parts)

    start = next((idx for idx, line in enumerate(lines) if header.match(line)), None)
    if start is None and has_entry(existing, entries_key, tool_key):
        # Registered as an inline table or dotted keys; drop those before appending.
        lines = _drop_key_lines(lines, parts)
        text = "".join(lines)
    if start is None:
        prefix = text
        if prefix and not prefix.endswith("\n"):
            prefix += "\n"
        if prefix.strip():
            prefix += "\n"
        updated = prefix + section
    else:
        end = len(lines)
        for idx in range(start + 1, len(lines)):
            if lines[idx].lstrip().startswith("["):
                end = idx
                break
        trailing: List[str] = []
        for line in reversed(lines[start:end]):
            if line.strip():
                break
            trailing.insert(0, line)
        updated = "".join(lines[:start]) + section + "".join(trailing) + "".join(lines[end:])

    parsed = parse_sectioned(updated)
    if not has_entry(parsed, entries_key, tool_key):
        raise ConfigParseError(f"unable to register '{tool_key}' under '{entries_key}'")
    return updated


def _drop_key_lines(lines: List[str], parts: List[str]) -> List[str]:
    """Remove ``key = value`` lines whose full dotted path falls under ``parts``.

    Lines inside sub-tables of ``parts`` (``[a.b.tool.env]``) are kept, as are
    continuation lines of values that belong to other keys.
    """

    kept: List[str] = []
    table: List[str] = []
    depth = 0
    dropping = False
    for line in lines:
        if depth > 0:
            depth += _bracket_depth(line)
            if not dropping:
                kept.append(line)
            continue
        dropping = False
        stripped = line.strip()
        if stripped.startswith("["):
            table = _table_path(stripped)
            kept.append(line)
            continue
        if "=" in stripped and not stripped.startswith("#"):
            path = table + _key_path(stripped.split("=", 1)[0])
            depth = max(_bracket_depth(line), 0)
            if table[: len(parts)] != parts and path[: len(parts)] == parts:
                dropping = True
                continue
        kept.append(line)
    return kept


def _key_path(raw: str) -> List[str]:
    return [part.strip().strip("\"'") for part in raw.split(".")]


def _table_path(header_line: str) -> List[str]:
    body = header_line[: header_line.rindex("]") + 1] if "]" in header_line else header_line
    return _key_path(body.strip("[] \t"))


def _bracket_depth(line: str) -> int:
    """Net count of opening brackets/braces outside strings and comments."""

    depth = 0
    quote = ""
    escaped = False
    for char in line:
        if quote:
            if escaped:
                escaped = False
            elif char == "\\" and quote == '"':
                escaped = True
            elif char == quote:
                quote = ""
            continue
        if char in "\"'":
            quote = char
        elif char == "#":
            break
        elif char in "[{":
            depth += 1
        elif char in "]}":
            depth -= 1
    return depth


def _quote_key(part: str) -> str:
    if _BARE_KEY.match(part):
        return part
    return json.dumps(part)


def _header_pattern(parts: List[str]) -> "re.Pattern[str]":
    alternatives = [
        f"(?:{re.escape(part)}|\"{re.escape(part)}\"|'{re.escape(part)}')" for part in parts
    ]
    dotted = r"\s*\.\s*".join(alternatives)
    return re.compile(rf"^\s*\[\s*{dotted}\s*\]\s*(?:#.*)?$")


def _render_section(parts: List[str], entry: Mapping[str, Any]) -> str:
    lines = ["[" + ".".join(_quote_key(part) for part in parts) + "]"]
    for key, value in entry.items():
        lines.append(f"{_quote_key(str(key))} = {_toml_value(value)}")
    return "\n".join(lines) + "\n"


def _toml_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        inner = ", ".join(f"{_quote_key(str(k))} = {_toml_value(v)}" for k, v in value.items())
        return "{" + (f" {inner} " if inner else "") + "}"
    raise TypeError(f"unsupported TOML value: {value!r}")


FORMATS: Dict[str, ConfigFormat] = {
    STRUCTURED: ConfigFormat(
        name=STRUCTURED,
        parse=parse_structured,
        has_entry=has_entry,
        write_entry=write_structured,
    ),
    SECTIONED: ConfigFormat(
        name=SECTIONED,
        parse=parse_sectioned,
        has_entry=has_entry,
        write_entry=write_sectioned,
    ),
}


def format_for(tag: str) -> ConfigFormat:
    try:
        return FORMATS[tag]
    except KeyError:
        raise ConfigParseError(f"unsupported config format: {tag}") from None


__all__ = [
    "ConfigFormat",
    "FORMATS",
    "ensure_nested",
    "format_for",
    "get_nested",
    "has_entry",
    "parse_sectioned",
    "parse_structured",
    "write_sectioned",
    "write_structured",
]
