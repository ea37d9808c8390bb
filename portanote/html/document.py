"""Standalone HTML document assembly."""

from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from markupsafe import Markup

from ..exporters import ExportError
from .css import PLATFORM_CLASSES

TEMPLATE_PACKAGE = "portanote.templates"
DOCUMENT_TEMPLATE = "document.html"
SCRIPT_ASSET = "export.js"
TEMPLATE_FILES = (DOCUMENT_TEMPLATE, SCRIPT_ASSET)

DEFAULT_SIZER_STYLE = "padding-top: 0px; padding-bottom: 0px;"

_PLATFORM_BODY_CLASSES = frozenset(f"is-{name}" for name in PLATFORM_CLASSES)


@dataclass(slots=True)
class HtmlDocumentParts:
    """Everything that goes into one exported HTML page."""

    title: str
    body_html: str
    css_text: str = ""
    html_class: str = ""
    body_class: str = ""
    html_data: dict[str, str] = field(default_factory=dict)
    body_data: dict[str, str] = field(default_factory=dict)
    extra_body_class: str = ""
    preview_class: str = ""
    preview_style: str = ""
    sizer_style: str = DEFAULT_SIZER_STYLE
    view_content_style: str = ""
    reading_view_style: str = ""
    banner_html: str = ""


def filter_platform_classes(class_names: str) -> str:
    """Remove ``is-mobile``-style platform classes from a class attribute."""

    return " ".join(
        name for name in class_names.split() if name not in _PLATFORM_BODY_CLASSES
    )


def _merge_classes(*values: str) -> str:
    return " ".join(value.strip() for value in values if value and value.strip())


def _attributes(class_names: str, data: dict[str, str]) -> dict[str, str | None]:
    attrs: dict[str, str | None] = {"class": class_names or None}
    for key, value in data.items():
        attrs[f"data-{key}"] = value
    return attrs


def ensure_templates(templates_dir: Path) -> None:
    """Copy the bundled templates into ``templates_dir`` unless already present."""

    for filename in TEMPLATE_FILES:
        target_path = templates_dir / filename
        if target_path.exists():
            continue
        target_path.parent.mkdir(parents=True, exist_ok=True)
        data = resources.files(TEMPLATE_PACKAGE).joinpath(filename).read_text("utf-8")
        target_path.write_text(data, encoding="utf-8")


class HtmlDocumentBuilder:
    """Render ``HtmlDocumentParts`` through the document template."""

    def __init__(self, templates_dir: Path) -> None:
        self.templates_dir = templates_dir
        self._env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def build(self, parts: HtmlDocumentParts) -> str:
        try:
            template = self._env.get_template(DOCUMENT_TEMPLATE)
        except TemplateNotFound as exc:
            raise ExportError(
                f"Template '{exc.name}' not found in {self.templates_dir}"
            ) from exc

        body_class = _merge_classes(filter_platform_classes(parts.body_class), parts.extra_body_class)
        return template.render(
            title=parts.title,
            html_attrs=_attributes(parts.html_class.strip(), parts.html_data),
            body_attrs=_attributes(body_class, parts.body_data),
            css_text=Markup(parts.css_text),
            preview_class=parts.preview_class.strip(),
            preview_style=parts.preview_style,
            sizer_style=parts.sizer_style,
            view_content_style=parts.view_content_style,
            reading_view_style=parts.reading_view_style,
            banner_html=Markup(parts.banner_html),
            body_html=Markup(parts.body_html),
            script=Markup(self._read_asset(SCRIPT_ASSET)),
        )

    def _read_asset(self, name: str) -> str:
        asset_path = self.templates_dir / name
        if not asset_path.exists():
            raise ExportError(f"Template '{name}' not found in {self.templates_dir}")
        return asset_path.read_text(encoding="utf-8")


__all__ = [
    "DEFAULT_SIZER_STYLE",
    "HtmlDocumentBuilder",
    "HtmlDocumentParts",
    "TEMPLATE_FILES",
    "ensure_templates",
    "filter_platform_classes",
]
