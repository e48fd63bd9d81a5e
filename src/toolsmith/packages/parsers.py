"""Normalize package listing output into PackageRecords.

Three formats are understood:

- ``json_array``: ``[{"name": ..., "version": ...}, ...]`` (pip)
- ``json_dependencies``: ``{"dependencies": {name: {"version": ...}}}`` (npm)
- ``json_lines``: concatenated module objects carrying ``Path`` and
  ``Version`` (go). Objects may be one per line or pretty-printed.

Single-document formats return ``[]`` when the document is malformed.
The concatenated format skips malformed objects and keeps going.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..errors import ParseFailure
from ..models.records import PackageRecord

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()


def parse_json_array(output: str) -> List[PackageRecord]:
    """Parse pip's ``list --format=json`` output."""
    try:
        data = _load_document(output, list)
    except ParseFailure as e:
        logger.error("Error parsing package list: %s", e.message)
        return []

    records = []
    for item in data:
        if not isinstance(item, dict) or "name" not in item:
            logger.debug("Skipping package entry without a name: %r", item)
            continue
        records.append(
            PackageRecord(
                name=str(item["name"]),
                version=str(item.get("version", "")),
                latest_version=_optional_str(item.get("latest_version")),
                installed=True,
            )
        )
    return _unique(records)


def parse_dependencies_object(output: str) -> List[PackageRecord]:
    """Parse npm's ``list --json`` output."""
    try:
        data = _load_document(output, dict)
    except ParseFailure as e:
        logger.error("Error parsing package list: %s", e.message)
        return []

    dependencies = data.get("dependencies") or {}
    if not isinstance(dependencies, dict):
        logger.error("Error parsing package list: 'dependencies' is not an object")
        return []

    records = []
    for name, info in dependencies.items():
        version = ""
        if isinstance(info, dict):
            version = str(info.get("version", ""))
        records.append(PackageRecord(name=name, version=version, installed=True))
    return _unique(records)


def parse_json_lines(output: str) -> List[PackageRecord]:
    """Parse go's ``list -m -json all`` output.

    A malformed object is skipped; parsing resumes on the next line that
    opens an object.
    """
    records = []
    skipped = 0
    for obj in _iter_objects(output):
        if obj is None:
            skipped += 1
            continue
        path = obj.get("Path")
        version = obj.get("Version")
        if not path or not version:
            # The main module has no version
            continue
        update = obj.get("Update")
        latest = update.get("Version") if isinstance(update, dict) else None
        records.append(
            PackageRecord(
                name=str(path),
                version=str(version),
                latest_version=_optional_str(latest),
                installed=True,
            )
        )

    if skipped:
        logger.warning("Skipped %d malformed module entries", skipped)
    return _unique(records)


PARSERS: Dict[str, Callable[[str], List[PackageRecord]]] = {
    "json_array": parse_json_array,
    "json_dependencies": parse_dependencies_object,
    "json_lines": parse_json_lines,
}


def parse_package_list(output: str, list_format: str) -> List[PackageRecord]:
    """Dispatch to the parser for ``list_format``."""
    try:
        parser = PARSERS[list_format]
    except KeyError:
        raise ValueError(f"Unknown package list format: {list_format}") from None
    return parser(output)


def _load_document(output: str, expected: type) -> Any:
    if not output.strip():
        raise ParseFailure("empty output")
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"invalid JSON: {e}") from e
    if not isinstance(data, expected):
        raise ParseFailure(f"expected a JSON {expected.__name__}, got {type(data).__name__}")
    return data


def _iter_objects(output: str) -> Iterator[Optional[Dict[str, Any]]]:
    """Yield each top-level object, or None for each malformed one."""
    pos = 0
    length = len(output)
    while pos < length:
        # Skip blank space to the next candidate
        while pos < length and output[pos].isspace():
            pos += 1
        if pos >= length:
            break

        line_end = output.find("\n", pos)
        next_line = length if line_end == -1 else line_end + 1

        if output[pos] != "{":
            # Junk at column 0 counts as malformed; indented lines are the
            # body of a pretty-printed object that failed to decode
            line_start = output.rfind("\n", 0, pos) + 1
            if pos == line_start and output[pos] != "}":
                yield None
            pos = next_line
            continue

        try:
            obj, end = _decoder.raw_decode(output, pos)
        except json.JSONDecodeError:
            yield None
            pos = next_line
            continue

        if isinstance(obj, dict):
            yield obj
        pos = end


def _unique(records: List[PackageRecord]) -> List[PackageRecord]:
    seen = set()
    unique = []
    for record in records:
        if record.name in seen:
            continue
        seen.add(record.name)
        unique.append(record)
    return unique


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value else None
