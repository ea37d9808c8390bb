"""Frontmatter parsing for vault notes."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable

import yaml

FRONTMATTER_DELIM = "---"


@dataclass(slots=True)
class ParsedNote:
    """A note split into its YAML metadata and Markdown body."""

    body: str
    metadata: dict[str, Any] = field(default_factory=dict)


def parse_document(raw: str) -> ParsedNote:
    lines = raw.splitlines()
    if not lines or lines[0].strip() != FRONTMATTER_DELIM:
        return ParsedNote(body=raw)

    closing_index = None
    for index in range(1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIM:
            closing_index = index
            break
    if closing_index is None:
        return ParsedNote(body=raw)

    metadata_block = "\n".join(lines[1:closing_index])
    body = "\n".join(lines[closing_index + 1 :])

    metadata: dict[str, Any] = {}
    try:
        loaded = yaml.safe_load(metadata_block) or {}
        if isinstance(loaded, dict):
            metadata = loaded
    except yaml.YAMLError:
        metadata = {}

    return ParsedNote(body=body, metadata=metadata)


def frontmatter_classes(metadata: dict[str, Any]) -> list[str]:
    """Return the ``cssclasses`` declared by a note, as a flat list."""

    raw = metadata.get("cssclasses")
    if not raw:
        return []
    values: Iterable[Any]
    if isinstance(raw, str):
        values = re.split(r"\s+", raw)
    elif isinstance(raw, list):
        values = raw
    else:
        return []
    return [str(value).strip() for value in values if str(value).strip()]


def export_base_name(
    metadata: dict[str, Any],
    default: str,
    key: str,
    override_key: str = "",
) -> str:
    """Pick the output base name from frontmatter, falling back to ``default``."""

    lookup = override_key.strip() or key.strip()
    if lookup:
        value = metadata.get(lookup)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return default


__all__ = [
    "FRONTMATTER_DELIM",
    "ParsedNote",
    "export_base_name",
    "frontmatter_classes",
    "parse_document",
]
