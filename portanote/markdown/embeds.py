"""Recursive, cycle-safe expansion of ``![[...]]`` embed tokens."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..notes_frontmatter import parse_document
from .links import (
    ExternalFile,
    LinkResolver,
    Note,
    format_link_target,
    missing_block,
    missing_embed,
    missing_heading,
    parse_cross_reference,
)

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..vault import Vault

logger = logging.getLogger(__name__)

MAX_EMBED_DEPTH = 10

EMBED_RE = re.compile(r"!\[\[([^\]]+)\]\]")
HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*$")
QUOTE_PREFIX_RE = re.compile(r"^(\s*(?:>\s*)+)")

EmbedKey = tuple[str, str, str]


@dataclass(slots=True)
class EmbedExpansionContext:
    """State shared by one expansion call tree.

    ``visited`` is the same set object at every depth, so a note that
    reappears anywhere below its first expansion is blocked.
    """

    visited: set[EmbedKey] = field(default_factory=set)
    depth: int = 0

    def descend(self) -> "EmbedExpansionContext":
        return EmbedExpansionContext(visited=self.visited, depth=self.depth + 1)


def recursive_embed_blocked(raw: str) -> str:
    return f"> Recursive embed blocked: {raw}"


def extract_heading_section(markdown: str, heading: str) -> str | None:
    """Return the section starting at ``heading`` up to the next heading of equal or higher rank."""

    lines = markdown.split("\n")
    wanted = heading.strip()
    start = -1
    level = 0
    for index, line in enumerate(lines):
        match = HEADING_RE.match(line)
        if match and match.group(2).strip() == wanted:
            start = index
            level = len(match.group(1))
            break
    if start == -1:
        return None

    section = [lines[start]]
    for line in lines[start + 1 :]:
        match = HEADING_RE.match(line)
        if match and len(match.group(1)) <= level:
            break
        section.append(line)
    return "\n".join(section)


def extract_block(markdown: str, block_id: str) -> str | None:
    """Return the line tagged ``^block_id`` with the marker removed."""

    marker = re.compile(rf"\s*\^{re.escape(block_id)}\s*$")
    for line in markdown.split("\n"):
        if marker.search(line):
            return marker.sub("", line)
    return None


def prefix_lines(text: str, prefix: str) -> str:
    """Re-quote ``text`` with ``prefix`` after dropping any quote marks it had."""

    if not prefix:
        return text
    return "\n".join(prefix + QUOTE_PREFIX_RE.sub("", line) for line in text.split("\n"))


def normalize_image_embeds(resolver: LinkResolver, markdown: str, source_path: str) -> str:
    """Turn image embeds into standard Markdown images; other embeds are kept."""

    def replace(match: re.Match[str]) -> str:
        reference = parse_cross_reference(match.group(1))
        target = resolver.resolve(reference, source_path)
        if not isinstance(target, ExternalFile) or not target.is_image:
            return match.group(0)
        label = reference.alias or target.file.basename
        return f"![{label}]({format_link_target(target.path)})"

    return EMBED_RE.sub(replace, markdown)


class EmbedExpander:
    """Replace embed tokens with the content they reference."""

    def __init__(self, vault: "Vault", resolver: LinkResolver | None = None) -> None:
        self.vault = vault
        self.resolver = resolver or LinkResolver(vault)

    def expand(
        self,
        markdown: str,
        source_path: str,
        context: EmbedExpansionContext | None = None,
    ) -> str:
        context = context if context is not None else EmbedExpansionContext()
        if context.depth > MAX_EMBED_DEPTH:
            logger.debug("Embed depth limit reached in %s", source_path)
            return markdown

        pieces: list[str] = []
        last_index = 0
        for match in EMBED_RE.finditer(markdown):
            index = match.start()
            line_start = markdown.rfind("\n", 0, index) + 1
            line_prefix = markdown[line_start:index]
            prefix_match = QUOTE_PREFIX_RE.match(line_prefix)
            if prefix_match and prefix_match.group(1) == line_prefix:
                quote_prefix = line_prefix
                pieces.append(markdown[last_index:line_start])
            else:
                quote_prefix = ""
                pieces.append(markdown[last_index:index])
            last_index = match.end()

            pieces.append(self._render(match.group(1), source_path, context, quote_prefix))

        pieces.append(markdown[last_index:])
        return "".join(pieces)

    def _render(
        self,
        inner: str,
        source_path: str,
        context: EmbedExpansionContext,
        quote_prefix: str,
    ) -> str:
        reference = parse_cross_reference(inner)
        target = self.resolver.resolve(reference, source_path)

        if isinstance(target, ExternalFile):
            label = reference.alias or target.file.basename
            link = f"[{label}]({format_link_target(target.path)})"
            return prefix_lines("!" + link if target.is_image else link, quote_prefix)

        if not isinstance(target, Note):
            return prefix_lines(missing_embed(inner), quote_prefix)

        key = (target.path, reference.heading or "", reference.block_id or "")
        if key in context.visited:
            logger.info("Blocked recursive embed of %s in %s", inner, source_path)
            return prefix_lines(recursive_embed_blocked(inner), quote_prefix)
        context.visited.add(key)

        content = parse_document(self.vault.read(target.file)).body
        if reference.heading:
            section = extract_heading_section(content, reference.heading)
            content = section if section is not None else missing_heading(reference.heading)
        elif reference.block_id:
            block = extract_block(content, reference.block_id)
            content = block if block is not None else missing_block(reference.block_id)

        expanded = self.expand(content, target.path, context.descend())
        if quote_prefix:
            return prefix_lines(expanded.strip(), quote_prefix)
        return f"\n\n{expanded}\n\n"


__all__ = [
    "EMBED_RE",
    "EmbedExpander",
    "EmbedExpansionContext",
    "MAX_EMBED_DEPTH",
    "extract_block",
    "extract_heading_section",
    "normalize_image_embeds",
    "prefix_lines",
    "recursive_embed_blocked",
]
