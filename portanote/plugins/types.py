"""Type definitions for Portanote plugin contracts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Protocol

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..config import PortanoteConfig
    from ..services.export import ExportContext, ExportOutcome, ExportRequest


class ExportHandler(Protocol):
    """Callable responsible for exporting one note in one format."""

    def __call__(
        self,
        *,
        context: "ExportContext",
        request: "ExportRequest",
    ) -> "ExportOutcome":  # pragma: no cover - Protocol
        """Run the export and describe what was written."""


class PluginSettingsGetter(Protocol):
    def __call__(
        self,
        plugin_id: str,
        *,
        default: Mapping[str, Any] | None = None,
    ) -> Mapping[str, Any]:  # pragma: no cover - Protocol
        """Return the ``[plugins.<plugin_id>]`` table."""


@dataclass(slots=True, frozen=True)
class ExportContribution:
    """Descriptor describing an export format provided by a plugin."""

    format_id: str
    formatter: ExportHandler
    description: str
    extension: str = ""


@dataclass(slots=True, frozen=True)
class BootstrapContext:
    """Context passed to plugin bootstrap hooks."""

    config: "PortanoteConfig"
    get_settings: PluginSettingsGetter


__all__ = [
    "BootstrapContext",
    "ExportContribution",
    "ExportHandler",
    "PluginSettingsGetter",
]
