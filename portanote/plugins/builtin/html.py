"""Built-in standalone HTML exporter plugin for Portanote."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ...config import DEFAULT_CONFIG_DIR
from ...html.document import ensure_templates
from ...services.export import ExportContext, ExportOutcome, ExportRequest, export_html_note
from .. import BootstrapContext, ExportContribution, hookimpl

PLUGIN_ID = "portanote-builtin-html"
TEMPLATE_RELATIVE_DIR = Path("templates")


@dataclass(frozen=True)
class HtmlPluginConfig:
    """Resolved configuration data for the HTML exporter plugin."""

    templates_root: Path


_current_config = HtmlPluginConfig(templates_root=DEFAULT_CONFIG_DIR)


def _resolve_plugin_config(context: BootstrapContext) -> HtmlPluginConfig:
    config_dir = context.config.config_dir
    raw_settings = context.get_settings(PLUGIN_ID, default={})

    templates_root_raw = raw_settings.get("templates_root")
    if templates_root_raw is None:
        return HtmlPluginConfig(templates_root=config_dir)
    root_path = Path(str(templates_root_raw)).expanduser()
    if not root_path.is_absolute():
        root_path = (config_dir / root_path).resolve()
    return HtmlPluginConfig(templates_root=root_path)


def current_templates_dir() -> Path:
    return _current_config.templates_root / TEMPLATE_RELATIVE_DIR


def _export_html(*, context: ExportContext, request: ExportRequest) -> ExportOutcome:
    return export_html_note(context, request, templates_dir=current_templates_dir())


@hookimpl
def bootstrap(context: BootstrapContext) -> None:
    """Capture configuration and ensure templates before exporters run."""

    global _current_config
    plugin_config = _resolve_plugin_config(context)
    ensure_templates(plugin_config.templates_root / TEMPLATE_RELATIVE_DIR)
    _current_config = plugin_config


@hookimpl
def export_formats() -> tuple[ExportContribution, ...]:
    """Expose the built-in HTML exporter as a plugin contribution."""

    contribution = ExportContribution(
        format_id="html",
        formatter=_export_html,
        description="Standalone HTML page with inlined styles",
        extension=".html",
    )
    return (contribution,)


__all__ = [
    "PLUGIN_ID",
    "bootstrap",
    "current_templates_dir",
    "export_formats",
]
