"""Turning note Markdown into a DOM that the HTML exporter post-processes."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol

import markdown as markdown_lib
from bs4 import BeautifulSoup

from .markdown.embeds import EmbedExpander, EmbedExpansionContext
from .markdown.links import LinkResolver
from .markdown.passes import convert_wikilinks

if TYPE_CHECKING:  # pragma: no cover - type check only
    from .vault import Vault

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSIONS = ("extra", "sane_lists")
CALLOUT_MARKER_RE = re.compile(r"^\[!([^\]]+)\]([+-]?)\s*(.*)$", re.DOTALL)


class RenderSurface:
    """A rendered subtree. ``snapshot`` feeds the quiescence wait."""

    def __init__(self, container: BeautifulSoup) -> None:
        self.container = container

    def snapshot(self) -> str:
        return str(self.container)

    @property
    def html(self) -> str:
        return self.container.decode_contents()


class Renderer(Protocol):
    """Host rendering collaborator: Markdown plus source identity in, DOM out."""

    def render(self, markdown: str, source_path: str) -> RenderSurface: ...


def _render_callouts(soup: BeautifulSoup) -> None:
    """Rewrite ``> [!type] Title`` blockquotes into callout containers."""

    for quote in soup.find_all("blockquote"):
        first = quote.find("p")
        if first is None or first.parent is not quote:
            continue
        text = first.decode_contents().strip()
        title_text, _, rest = text.partition("\n")
        match = CALLOUT_MARKER_RE.match(title_text)
        if match is None:
            continue
        callout_type = match.group(1).strip().lower()
        fold = match.group(2)

        callout = soup.new_tag("div", attrs={"class": "callout", "data-callout": callout_type})
        if fold:
            callout["data-callout-fold"] = fold
        title = soup.new_tag("div", attrs={"class": "callout-title"})
        inner = soup.new_tag("div", attrs={"class": "callout-title-inner"})
        inner.append(BeautifulSoup(match.group(3) or callout_type.title(), "html.parser"))
        title.append(inner)
        content = soup.new_tag("div", attrs={"class": "callout-content"})

        if rest.strip():
            para = soup.new_tag("p")
            para.append(BeautifulSoup(rest, "html.parser"))
            content.append(para)
        first.decompose()
        for child in list(quote.contents):
            content.append(child.extract())

        callout.append(title)
        callout.append(content)
        quote.replace_with(callout)


class MarkdownRenderer:
    """Render with python-markdown after making vault syntax portable.

    Embeds are expanded and wikilinks converted first, since the renderer
    knows nothing about either.
    """

    def __init__(self, vault: "Vault", *, extensions: tuple[str, ...] = MARKDOWN_EXTENSIONS) -> None:
        self.vault = vault
        self.resolver = LinkResolver(vault)
        self.extensions = list(extensions)

    def prepare(self, markdown: str, source_path: str) -> str:
        expander = EmbedExpander(self.vault, self.resolver)
        expanded = expander.expand(markdown, source_path, EmbedExpansionContext())
        return convert_wikilinks(self.resolver, expanded, source_path)

    def render(self, markdown: str, source_path: str) -> RenderSurface:
        html = markdown_lib.markdown(
            self.prepare(markdown, source_path), extensions=self.extensions
        )
        soup = BeautifulSoup(html, "html.parser")
        _render_callouts(soup)
        logger.debug("Rendered %s (%d chars of HTML)", source_path, len(html))
        return RenderSurface(soup)


__all__ = ["MARKDOWN_EXTENSIONS", "MarkdownRenderer", "RenderSurface", "Renderer"]
