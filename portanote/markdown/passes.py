"""Text-to-text passes that turn a vault note into portable Markdown."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterator

from ..vault import StorageError
from .embeds import EmbedExpander, EmbedExpansionContext
from .links import (
    ExternalFile,
    LinkResolver,
    Note,
    format_link_target,
    normalize_link_target,
    parse_cross_reference,
)

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..config import ExportSettings
    from ..output import AssetRelocator
    from ..vault import Vault

logger = logging.getLogger(__name__)

DATAVIEW_LANGUAGES = frozenset({"dataview", "dataviewjs"})

FENCE_OPEN_RE = re.compile(r"^ {0,3}(`{3,}|~{3,})[ \t]*(.*)$")
CALLOUT_RE = re.compile(r"^(\s*(?:>\s*)+)\[!([^\]]+)\][+-]?\s*(.*)$")
WIKILINK_RE = re.compile(r"\[\[([^\]]+)\]\]")
URI_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*:", re.IGNORECASE)
TITLE_RE = re.compile(r"^(.*?)(\s+(?:\"[^\"]*\"|'[^']*'))?\s*$", re.DOTALL)


def _open_fence(line: str) -> tuple[str, str] | None:
    """Return ``(marker, language)`` when ``line`` opens a fenced code block."""

    match = FENCE_OPEN_RE.match(line)
    if match is None:
        return None
    marker, info = match.group(1), match.group(2).strip()
    if marker[0] == "`" and "`" in info:
        return None
    language = info.split()[0].lower() if info else ""
    return marker, language


def _closes_fence(line: str, marker: str) -> bool:
    stripped = line.strip()
    return (
        len(stripped) >= len(marker)
        and set(stripped) == {marker[0]}
        and len(line) - len(line.lstrip(" ")) <= 3
    )


def strip_dataview(markdown: str, mode: str, placeholder: str) -> str:
    """Keep, remove, or replace with ``placeholder`` every dataview code block."""

    if mode == "keep":
        return markdown

    out: list[str] = []
    fence: str | None = None
    dropping = False
    for line in markdown.split("\n"):
        if fence is None:
            opened = _open_fence(line)
            if opened is not None:
                fence, language = opened
                dropping = language in DATAVIEW_LANGUAGES
                if dropping:
                    if mode == "placeholder":
                        out.append(placeholder)
                    continue
            out.append(line)
            continue

        if _closes_fence(line, fence):
            fence = None
            if dropping:
                dropping = False
                continue
            out.append(line)
            continue
        if not dropping:
            out.append(line)
    return "\n".join(out)


def convert_callouts(markdown: str) -> str:
    """Reduce ``> [!type] Title`` marker lines to ``> Title``."""

    def convert(line: str) -> str:
        match = CALLOUT_RE.match(line)
        if match is None:
            return line
        title = match.group(3).strip()
        if not title:
            return ""
        return f"{match.group(1)}{title}"

    return "\n".join(convert(line) for line in markdown.split("\n"))


def convert_wikilinks(resolver: LinkResolver, markdown: str, source_path: str) -> str:
    """Rewrite ``[[target#heading|alias]]`` as standard Markdown links."""

    def replace(match: re.Match[str]) -> str:
        reference = parse_cross_reference(match.group(1))
        anchor = reference.anchor
        text = reference.alias or (reference.suffix_text if anchor else reference.raw_target)
        target = resolver.resolve(reference, source_path)
        if isinstance(target, ExternalFile):
            return f"[{text}]({format_link_target(target.path)})"
        if isinstance(target, Note):
            return f"[{text}]({target.path}{anchor})"
        return f"[{text}]({reference.raw_target}{'.md' if reference.raw_target else ''}{anchor})"

    return WIKILINK_RE.sub(replace, markdown)


@dataclass(slots=True, frozen=True)
class MarkdownLink:
    """A standard ``[label](target)`` or ``![label](target)`` occurrence."""

    start: int
    end: int
    is_image: bool
    label: str
    target: str
    title: str


def _matching_bracket(text: str, start: int) -> int:
    depth = 0
    index = start
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == "\n" and text.startswith("\n", index + 1):
            return -1
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _destination_end(text: str, start: int) -> int:
    """Return the index of the ``)`` closing a destination opened at ``start``."""

    index = start + 1
    if text.startswith("<", index):
        close = text.find(">", index)
        if close == -1 or "\n" in text[index:close]:
            return -1
        index = close + 1
    depth = 1
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if char == "\n":
            return -1
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return -1


def _code_regions(text: str) -> list[tuple[int, int]]:
    """Character ranges covered by fenced code blocks or inline code spans."""

    regions: list[tuple[int, int]] = []
    offset = 0
    fence: str | None = None
    fence_start = 0
    for line in text.split("\n"):
        line_end = offset + len(line)
        if fence is None:
            opened = _open_fence(line)
            if opened is not None:
                fence = opened[0]
                fence_start = offset
            else:
                for match in re.finditer(r"(`+)(?!`).*?(?<!`)\1(?!`)", line):
                    regions.append((offset + match.start(), offset + match.end()))
        elif _closes_fence(line, fence):
            regions.append((fence_start, line_end))
            fence = None
        offset = line_end + 1
    if fence is not None:
        regions.append((fence_start, len(text)))
    return regions


def iter_markdown_links(text: str) -> Iterator[MarkdownLink]:
    """Yield top-level standard links and images in document order.

    Code blocks, code spans and ``[[wikilinks]]`` are skipped. Labels may
    contain nested links (``[![alt](img)](href)``); callers recurse into
    ``label`` for those.
    """

    regions = _code_regions(text)
    region_index = 0
    index = 0
    while index < len(text):
        while region_index < len(regions) and regions[region_index][1] <= index:
            region_index += 1
        if region_index < len(regions) and regions[region_index][0] <= index:
            index = regions[region_index][1]
            continue

        char = text[index]
        if char == "\\":
            index += 2
            continue
        if text.startswith("[[", index):
            close = text.find("]]", index + 2)
            index = close + 2 if close != -1 else index + 2
            continue
        if char != "[":
            index += 1
            continue

        is_image = index > 0 and text[index - 1] == "!"
        close = _matching_bracket(text, index)
        if close == -1 or not text.startswith("(", close + 1):
            index += 1
            continue
        end = _destination_end(text, close + 1)
        if end == -1:
            index += 1
            continue

        start = index - 1 if is_image else index
        inner = text[close + 2 : end]
        title_match = TITLE_RE.match(inner)
        target = title_match.group(1) if title_match else inner
        title = (title_match.group(2) or "") if title_match else ""
        yield MarkdownLink(
            start=start,
            end=end + 1,
            is_image=is_image,
            label=text[index + 1 : close],
            target=target,
            title=title,
        )
        index = end + 1


def rewrite_markdown_links(text: str, rewrite_target: Callable[[str], str | None]) -> str:
    """Rebuild ``text`` with every link target passed through ``rewrite_target``.

    ``rewrite_target`` returns the new destination, or ``None`` to keep
    the link untouched. Each occurrence is rewritten in place, so
    duplicate links and targets with parentheses are handled.
    """

    pieces: list[str] = []
    last = 0
    for link in iter_markdown_links(text):
        pieces.append(text[last : link.start])
        label = link.label if link.is_image else rewrite_markdown_links(link.label, rewrite_target)
        replacement = rewrite_target(link.target)
        target = replacement if replacement is not None else link.target
        bang = "!" if link.is_image else ""
        pieces.append(f"{bang}[{label}]({target}{link.title})")
        last = link.end
    pieces.append(text[last:])
    return "".join(pieces)


def rewrite_asset_links(
    resolver: LinkResolver,
    markdown: str,
    source_path: str,
    relocator: "AssetRelocator",
) -> str:
    """Copy linked local files into the assets folder and point links at the copies."""

    def relocate(target: str) -> str | None:
        if not target.strip():
            return None
        normalized = normalize_link_target(target)
        if URI_SCHEME_RE.match(normalized) or normalized.startswith("#"):
            return None
        path_part, _, fragment = normalized.partition("#")
        file = resolver.resolve_link_text(path_part, source_path)
        if file is None:
            return None
        try:
            new_path = relocator.copy(file)
        except (StorageError, OSError) as exc:
            logger.warning("Skipping asset %s: %s", file.path, exc)
            return None
        return format_link_target(f"{new_path}#{fragment}" if fragment else new_path)

    return rewrite_markdown_links(markdown, relocate)


def export_markdown(
    vault: "Vault",
    markdown: str,
    source_path: str,
    settings: "ExportSettings",
    relocator: "AssetRelocator | None" = None,
) -> str:
    """Run every enabled pass, in their fixed order, over ``markdown``."""

    resolver = LinkResolver(vault)
    result = strip_dataview(
        markdown, settings.md_dataview_mode, settings.md_dataview_placeholder
    )
    if settings.md_expand_embeds:
        expander = EmbedExpander(vault, resolver)
        result = expander.expand(result, source_path, EmbedExpansionContext())
    if settings.md_convert_callouts:
        result = convert_callouts(result)
    if settings.md_convert_wikilinks:
        result = convert_wikilinks(resolver, result, source_path)
    if settings.copy_assets and relocator is not None:
        result = rewrite_asset_links(resolver, result, source_path, relocator)
    return result


__all__ = [
    "DATAVIEW_LANGUAGES",
    "MarkdownLink",
    "convert_callouts",
    "convert_wikilinks",
    "export_markdown",
    "iter_markdown_links",
    "rewrite_asset_links",
    "rewrite_markdown_links",
    "strip_dataview",
]
