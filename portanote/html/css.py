"""Stylesheet collection and device-independent CSS normalization."""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Protocol
from urllib.parse import unquote

from ..vault import StorageError

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..config import PortanoteConfig
    from ..vault import Vault

logger = logging.getLogger(__name__)

TEMPLATE_PACKAGE = "portanote.templates"
BASE_STYLESHEET = "base.css"

# Rules whose custom properties resolve to nothing outside the live app.
EXCLUDED_SELECTORS = (".sfb-figlet-display.sfb-figlet-gradient pre",)

PLATFORM_CLASSES = ("mobile", "ios", "phone", "tablet", "android")
_PLATFORM_SELECTOR_RE = re.compile(r"body\.is-(mobile|ios|phone|tablet|android)(?![\w-])")
_NEGATED_PLATFORM_RE = re.compile(
    r"body(?::not\(\.is-(?:mobile|ios|phone|tablet|android)\))+"
)
_GROUPING_AT_RULES = ("@media", "@supports", "@layer", "@container", "@document")

URL_RE = re.compile(r"url\(([^)]+)\)")

MIME_BY_EXTENSION = {
    "woff2": "font/woff2",
    "woff": "font/woff",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
}

MULTI_COLUMN_FIX_CSS = """
/* Export fix: remove top padding/margins inside multi-column embeds */
div[data-callout="multi-column"].callout .markdown-embed-content > .markdown-preview-view,
div[data-callout="multi-column"].callout .internal-embed .markdown-embed-content > .markdown-preview-view {
  padding-top: 0 !important;
  margin-top: 0 !important;
}
div[data-callout="multi-column"].callout .markdown-embed-content > .markdown-preview-view > .markdown-preview-sizer > *:first-child {
  margin-top: 0 !important;
}
div[data-callout="multi-column"].callout blockquote {
  margin-top: 0 !important;
  margin-bottom: 0 !important;
}

/* PDF pagination fixes */
li {
  page-break-inside: avoid;
  break-inside: avoid;
}
h1, h2, h3, h4, h5, h6 {
  page-break-after: avoid;
  break-after: avoid;
}
img, .callout, blockquote, pre, table {
  page-break-inside: avoid;
  break-inside: avoid;
}
"""


class StyleSheetAccessError(RuntimeError):
    """Raised when a stylesheet's rules cannot be read."""


@dataclass(slots=True, frozen=True)
class CssRule:
    """One top-level rule: a style rule, an at-rule block, or an at-rule statement."""

    prelude: str
    css_text: str
    block: str | None = None

    @property
    def is_at_rule(self) -> bool:
        return self.prelude.startswith("@")

    @property
    def selector_text(self) -> str | None:
        return None if self.is_at_rule else self.prelude


def split_css_rules(css: str) -> list[CssRule]:
    """Split stylesheet text into top-level rules.

    Comments between rules are dropped. Strings and comments inside
    rules are honoured when matching braces.
    """

    rules: list[CssRule] = []
    index = 0
    length = len(css)
    start: int | None = None
    prelude_end = 0
    depth = 0
    while index < length:
        char = css[index]
        if css.startswith("/*", index):
            close = css.find("*/", index + 2)
            index = length if close == -1 else close + 2
            continue
        if char in "\"'":
            close = index + 1
            while close < length and css[close] != char:
                close += 2 if css[close] == "\\" else 1
            index = close + 1
            continue
        if start is None:
            if not char.isspace():
                start = index
            else:
                index += 1
                continue
        if char == "{":
            if depth == 0:
                prelude_end = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                rules.append(
                    CssRule(
                        prelude=_strip_comments(css[start:prelude_end]).strip(),
                        css_text=css[start : index + 1].strip(),
                        block=css[prelude_end + 1 : index],
                    )
                )
                start = None
        elif char == ";" and depth == 0:
            text = css[start : index + 1].strip()
            rules.append(CssRule(prelude=text, css_text=text))
            start = None
        index += 1

    if start is not None and css[start:].strip():
        text = css[start:].strip()
        rules.append(CssRule(prelude=text, css_text=text))
    return rules


def _strip_comments(text: str) -> str:
    return re.sub(r"/\*.*?\*/", "", text, flags=re.DOTALL)


class StyleSheet(Protocol):
    """A source of CSS rules on the rendering surface."""

    href: str | None

    def rules(self) -> list[CssRule]: ...


class TextStyleSheet:
    """A stylesheet held in memory."""

    def __init__(self, text: str, href: str | None = None) -> None:
        self.text = text
        self.href = href

    def rules(self) -> list[CssRule]:
        return split_css_rules(self.text)


class FileStyleSheet:
    """A stylesheet read from disk when its rules are requested."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.href = path.as_uri() if path.is_absolute() else str(path)

    def rules(self) -> list[CssRule]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise StyleSheetAccessError(f"Cannot read stylesheet {self.path}: {exc}") from exc
        return split_css_rules(text)


def should_exclude_rule(rule: CssRule) -> bool:
    return rule.selector_text is not None and rule.selector_text in EXCLUDED_SELECTORS


def collect_css_text(sheets: Iterable[StyleSheet]) -> str:
    """Join the rules of every readable stylesheet and normalize them."""

    parts: list[str] = []
    for sheet in sheets:
        try:
            rules = sheet.rules()
        except StyleSheetAccessError as exc:
            logger.debug("Skipping inaccessible stylesheet %s: %s", sheet.href, exc)
            continue
        parts.extend(rule.css_text for rule in rules if not should_exclude_rule(rule))
    return normalize_css_for_export("\n".join(parts))


def _normalize_rule(rule: CssRule) -> str:
    if rule.is_at_rule:
        keyword = rule.prelude.split(None, 1)[0].lower()
        if rule.block is not None and keyword in _GROUPING_AT_RULES:
            inner = "\n".join(_normalize_rule(child) for child in split_css_rules(rule.block))
            return f"{rule.prelude} {{\n{inner}\n}}"
        return rule.css_text

    match = _PLATFORM_SELECTOR_RE.search(rule.prelude)
    if match is not None:
        return f"/* {match.group(1)} rule removed */"
    return rule.css_text


def normalize_css_for_export(css: str) -> str:
    """Drop platform-only rules and treat the export as the desktop baseline.

    Rules selected by ``body.is-<platform>`` become a comment marker and
    any chain of ``body:not(.is-<platform>)`` negations becomes ``body``.
    """

    normalized = "\n".join(_normalize_rule(rule) for rule in split_css_rules(css))
    return _NEGATED_PLATFORM_RE.sub("body", normalized)


def _extension_from_url(url: str) -> str:
    clean = url.split("?", 1)[0].split("#", 1)[0]
    name = clean.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def _strip_quotes(raw: str) -> str:
    return re.sub(r"^['\"]|['\"]$", "", raw.strip())


AssetFetcher = Callable[[str], "bytes | None"]


def local_fetcher(*base_dirs: Path) -> AssetFetcher:
    """Fetch relative CSS urls from the first base directory that has them."""

    def fetch(url: str) -> bytes | None:
        relative = unquote(url.split("?", 1)[0].split("#", 1)[0])
        for base in base_dirs:
            candidate = base / relative
            if candidate.is_file():
                return candidate.read_bytes()
        return None

    return fetch


def inline_asset_urls(css_text: str, fetch: AssetFetcher | None = None) -> str:
    """Embed local font and image ``url(...)`` references as ``data:`` URIs."""

    replacements: dict[str, str] = {}
    for match in URL_RE.finditer(css_text):
        url = _strip_quotes(match.group(1))
        if not url or url.startswith("data:"):
            continue
        if url.startswith(("http://", "https://")):
            continue
        mime = MIME_BY_EXTENSION.get(_extension_from_url(url))
        if mime is None or url in replacements:
            continue
        try:
            if url.startswith("file://"):
                data: bytes | None = Path(unquote(url[len("file://") :])).read_bytes()
            elif url.startswith("/"):
                data = Path(url).read_bytes()
            elif fetch is not None:
                data = fetch(url)
            else:
                data = None
        except OSError as exc:
            logger.debug("Could not inline %s: %s", url, exc)
            continue
        if data is None:
            continue
        encoded = base64.b64encode(data).decode("ascii")
        replacements[url] = f"data:{mime};base64,{encoded}"

    if not replacements:
        return css_text

    def substitute(match: re.Match[str]) -> str:
        replacement = replacements.get(_strip_quotes(match.group(1)))
        if replacement is None:
            return match.group(0)
        return f'url("{replacement}")'

    return URL_RE.sub(substitute, css_text)


def _safe_read(vault: "Vault", path: str) -> str:
    try:
        return vault.storage.read(path)
    except StorageError:
        return ""


def read_appearance(vault: "Vault") -> dict:
    raw = _safe_read(vault, f"{vault.config_dir}/appearance.json")
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed %s/appearance.json", vault.config_dir)
        return {}
    return data if isinstance(data, dict) else {}


@dataclass(slots=True, frozen=True)
class SnippetCss:
    css_text: str
    snippet_paths: tuple[str, ...]


def collect_enabled_snippets(vault: "Vault") -> SnippetCss:
    """Read the enabled CSS snippets, or every snippet when none are listed."""

    snippets_dir = f"{vault.config_dir}/snippets"
    enabled = read_appearance(vault).get("enabledCssSnippets")
    candidates: list[str] = []

    if isinstance(enabled, list) and enabled:
        for snippet in enabled:
            name = str(snippet).strip()
            if not name:
                continue
            if name.lower().endswith(".css"):
                candidates.append(f"{snippets_dir}/{name}")
            else:
                candidates.append(f"{snippets_dir}/{name}.css")
                candidates.append(f"{snippets_dir}/{name}")
    else:
        try:
            listed = vault.storage.list(snippets_dir)
        except StorageError:
            listed = []
        candidates.extend(path for path in listed if path.lower().endswith(".css"))

    parts: list[str] = []
    loaded: list[str] = []
    for path in dict.fromkeys(candidates):
        css = _safe_read(vault, path)
        if css:
            parts.append(css)
            loaded.append(path)
    return SnippetCss(css_text="\n".join(parts), snippet_paths=tuple(loaded))


def base_stylesheet() -> TextStyleSheet:
    text = resources.files(TEMPLATE_PACKAGE).joinpath(BASE_STYLESHEET).read_text("utf-8")
    return TextStyleSheet(text, href=BASE_STYLESHEET)


def discover_stylesheets(vault: "Vault", config: "PortanoteConfig") -> list[StyleSheet]:
    """Stylesheets active on the rendering surface, in cascade order."""

    sheets: list[StyleSheet] = [base_stylesheet()]
    theme = read_appearance(vault).get("cssTheme")
    if isinstance(theme, str) and theme.strip():
        sheets.append(
            FileStyleSheet(vault.root / vault.config_dir / "themes" / theme.strip() / "theme.css")
        )
    for entry in config.stylesheets:
        path = Path(entry).expanduser()
        sheets.append(FileStyleSheet(path if path.is_absolute() else vault.root / path))
    return sheets


__all__ = [
    "CssRule",
    "EXCLUDED_SELECTORS",
    "FileStyleSheet",
    "MULTI_COLUMN_FIX_CSS",
    "PLATFORM_CLASSES",
    "SnippetCss",
    "StyleSheet",
    "StyleSheetAccessError",
    "TextStyleSheet",
    "collect_css_text",
    "collect_enabled_snippets",
    "discover_stylesheets",
    "inline_asset_urls",
    "local_fetcher",
    "normalize_css_for_export",
    "read_appearance",
    "split_css_rules",
]
