"""Optional note banner rendered above the exported document."""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol

from ..vault import StorageError
from .dom import IMAGE_MIME_BY_EXTENSION

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..markdown.links import LinkResolver
    from ..vault import Vault, VaultFile

logger = logging.getLogger(__name__)

BANNER_IMAGE_KEYS = ("banner_image", "backdrop", "banner")
DEFAULT_BANNER = {"height": 200, "opacity": 1, "offset": "center", "gradient": False}

BANNER_CSS_TEMPLATE = """
/* Banner styles for export */
.sf-banner-container {{
  width: 100%;
  margin: 0;
  padding: 0;
}}
.sf-banner {{
  width: 100%;
  height: {height}px;
  background-size: cover;
  background-repeat: no-repeat;
}}
"""


class BannerProvider(Protocol):
    """Supplies banner defaults, usually from a companion plugin."""

    def get_defaults(self) -> Mapping[str, Any]: ...


@dataclass(slots=True, frozen=True)
class BannerConfig:
    image: str
    height: float
    opacity: float
    offset: str
    gradient: bool


@dataclass(slots=True, frozen=True)
class Banner:
    html: str
    css: str


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_banner_offset(value: Any, default: str) -> str:
    """Turn a frontmatter offset into a CSS ``background-position`` component."""

    if value is None:
        return default
    if _is_number(value):
        return f"{_format_number(_clamp(value, 0, 100))}%"
    if isinstance(value, str):
        lower = value.strip().lower()
        if lower in ("top", "center", "bottom"):
            return lower
        if lower.endswith("%"):
            try:
                number = float(lower[:-1])
            except ValueError:
                return default
            return f"{_format_number(_clamp(number, 0, 100))}%"
        if lower.endswith("px"):
            return lower
    return default


def parse_banner_gradient(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return default


def banner_config(metadata: Mapping[str, Any], provider: BannerProvider | None) -> BannerConfig | None:
    """Merge banner frontmatter over provider (or built-in) defaults."""

    image = next((metadata[key] for key in BANNER_IMAGE_KEYS if metadata.get(key)), None)
    if not image:
        return None

    defaults = dict(DEFAULT_BANNER)
    if provider is not None:
        defaults.update(provider.get_defaults())

    height = metadata.get("banner_height")
    opacity = metadata.get("banner_opacity")
    offset = metadata.get("banner_offset")
    if offset is None:
        offset = metadata.get("banner_position")
    return BannerConfig(
        image=str(image),
        height=height if _is_number(height) else float(defaults["height"]),
        opacity=_clamp(opacity, 0, 1) if _is_number(opacity) else float(defaults["opacity"]),
        offset=parse_banner_offset(offset, str(defaults["offset"])),
        gradient=parse_banner_gradient(metadata.get("banner_gradient"), bool(defaults["gradient"])),
    )


def resolve_banner_image(
    vault: "Vault",
    resolver: "LinkResolver",
    image: str,
    source_path: str,
) -> str:
    """Return a URL usable from a standalone document for ``image``.

    Remote and ``data:`` URLs pass through. Vault images become base64
    ``data:`` URIs; anything unresolvable is returned as written.
    """

    if image.startswith(("http://", "https://", "data:")):
        return image
    clean = image
    if clean.startswith("[[") and clean.endswith("]]"):
        clean = clean[2:-2]
    file: VaultFile | None = resolver.resolve_link_text(clean, source_path)
    if file is None:
        file = vault.get_file(clean)
    if file is None:
        return image
    try:
        data = vault.read_binary(file)
    except StorageError as exc:
        logger.warning("Could not read banner image %s: %s", file.path, exc)
        return image
    mime = IMAGE_MIME_BY_EXTENSION.get(file.extension, "application/octet-stream")
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def generate_banner(
    vault: "Vault",
    resolver: "LinkResolver",
    file: "VaultFile",
    metadata: Mapping[str, Any],
    provider: BannerProvider | None = None,
) -> Banner | None:
    """Build banner markup and CSS, or ``None`` when the note has no banner."""

    config = banner_config(metadata, provider)
    if config is None:
        return None

    url = resolve_banner_image(vault, resolver, config.image, file.path).replace("'", "\\'")
    height = _format_number(config.height)
    opacity = _format_number(config.opacity)
    style = (
        f"background-image: url('{url}'); height: {height}px; "
        f"background-position: center {config.offset};"
    )
    if config.gradient:
        mask = f"linear-gradient(to bottom, rgba(0,0,0,1) 0%, rgba(0,0,0,{opacity}) 100%)"
        style += f" opacity: 1; -webkit-mask-image: {mask}; mask-image: {mask};"
    else:
        style += f" opacity: {opacity};"

    classes = "sf-banner sf-banner-gradient" if config.gradient else "sf-banner"
    html = (
        f'<div class="sf-banner-container"><div class="{classes}" '
        f'style="{style}"></div></div>'
    )
    return Banner(html=html, css=BANNER_CSS_TEMPLATE.format(height=height))


__all__ = [
    "Banner",
    "BannerConfig",
    "BannerProvider",
    "banner_config",
    "generate_banner",
    "parse_banner_gradient",
    "parse_banner_offset",
    "resolve_banner_image",
]
