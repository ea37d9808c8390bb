"""Post-processing of the rendered note DOM."""

from __future__ import annotations

import base64
import logging
import time
from typing import TYPE_CHECKING, Callable

from bs4 import BeautifulSoup, Tag

from ..markdown.links import normalize_link_target
from ..vault import StorageError

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..markdown.links import LinkResolver
    from ..output import AssetRelocator
    from ..vault import Vault, VaultFile

logger = logging.getLogger(__name__)

EXTERNAL_PREFIXES = ("http://", "https://", "mailto:", "tel:")
IMAGE_MIME_BY_EXTENSION = {
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
EMBED_CONTAINERS = ("internal-embed", "media-embed", "image-embed")


def wait_for_idle(
    snapshot: Callable[[], object],
    *,
    timeout_ms: int,
    idle_ms: int,
    poll_ms: int = 25,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Wait until ``snapshot()`` stops changing for ``idle_ms``.

    Returns ``True`` when the surface went quiet, ``False`` when the
    ``timeout_ms`` ceiling ended the wait first.
    """

    start = clock()
    deadline = start + timeout_ms / 1000
    idle = idle_ms / 1000
    last = snapshot()
    last_change = start
    while True:
        now = clock()
        if now - last_change >= idle:
            return True
        if now >= deadline:
            return False
        sleep(min(poll_ms / 1000, max(deadline - now, 0)))
        current = snapshot()
        if current != last:
            last = current
            last_change = clock()


def is_external_link(link: str) -> bool:
    return link.lower().startswith(EXTERNAL_PREFIXES)


def get_link_text(element: Tag) -> str:
    """The vault link an element stands for, preferring host data attributes."""

    for attribute in ("data-href", "data-src", "href"):
        value = element.get(attribute)
        if value:
            return str(value)
    src = str(element.get("src") or "")
    if src and not src.startswith(("app://", "file://")):
        return src
    for parent in element.parents:
        classes = parent.get("class") or []
        if any(name in classes for name in EMBED_CONTAINERS):
            for attribute in ("data-href", "data-src", "src"):
                value = parent.get(attribute)
                if value:
                    return str(value)
            break
    return src


def _resolve(resolver: "LinkResolver", link_text: str, source_path: str) -> "VaultFile | None":
    return resolver.resolve_link_text(normalize_link_target(link_text), source_path)


def inline_local_images(
    container: BeautifulSoup,
    vault: "Vault",
    resolver: "LinkResolver",
    source_path: str,
) -> None:
    """Replace local ``<img>`` sources with base64 ``data:`` URIs."""

    for img in container.find_all("img"):
        src = str(img.get("src") or "")
        if src.startswith("data:"):
            continue
        link_text = get_link_text(img)
        if not link_text or is_external_link(link_text) or link_text.startswith(("app://", "file://")):
            continue
        file = _resolve(resolver, link_text, source_path)
        if file is None:
            continue
        try:
            data = vault.read_binary(file)
        except StorageError as exc:
            logger.warning("Could not inline image %s: %s", file.path, exc)
            continue
        mime = IMAGE_MIME_BY_EXTENSION.get(file.extension, "application/octet-stream")
        img["src"] = f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"
        if img.has_attr("srcset"):
            del img["srcset"]


def copy_local_assets(
    container: BeautifulSoup,
    resolver: "LinkResolver",
    source_path: str,
    relocator: "AssetRelocator",
) -> None:
    """Copy local images and linked files to the assets folder and repoint them."""

    for img in container.find_all("img"):
        src = str(img.get("src") or "")
        if src.startswith("data:"):
            continue
        link_text = get_link_text(img)
        if not link_text or is_external_link(link_text):
            continue
        new_path = _relocate(resolver, link_text, source_path, relocator)
        if new_path is not None:
            img["src"] = new_path

    for link in container.find_all("a"):
        href = str(link.get("href") or "")
        link_text = get_link_text(link)
        if not link_text or is_external_link(href) or href.startswith("#"):
            continue
        new_path = _relocate(resolver, link_text, source_path, relocator)
        if new_path is not None:
            link["href"] = new_path


def _relocate(
    resolver: "LinkResolver",
    link_text: str,
    source_path: str,
    relocator: "AssetRelocator",
) -> str | None:
    file = _resolve(resolver, link_text, source_path)
    if file is None:
        return None
    try:
        return relocator.copy(file)
    except (StorageError, OSError) as exc:
        logger.warning("Skipping asset %s: %s", file.path, exc)
        return None


def trim_multi_column_callouts(container: BeautifulSoup) -> None:
    """Tighten multi-column callouts: unwrap block embeds and drop empty children."""

    for callout in container.select('div.callout[data-callout="multi-column"]'):
        content = callout.select_one(".callout-content")
        if content is None:
            continue

        for para in content.find_all("p"):
            span = para.select_one("span.internal-embed.inline-embed")
            if span is None or span.select_one(".markdown-embed-content, .markdown-embed-title") is None:
                continue
            span["class"] = list(span.get("class") or []) + ["block-embed"]
            span["style"] = "display: block;"
            para.replace_with(span)

        # Only the leading run of empty children goes.
        for child in list(content.find_all(recursive=False)):
            text = child.get_text().replace(" ", " ").strip()
            has_media = child.find(["img", "video", "audio", "svg", "iframe"]) is not None
            if text or has_media:
                break
            child.decompose()


__all__ = [
    "copy_local_assets",
    "get_link_text",
    "inline_local_images",
    "is_external_link",
    "trim_multi_column_callouts",
    "wait_for_idle",
]
