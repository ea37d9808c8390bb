"""Hook specifications for Portanote plugins."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from ._markers import hookspec
from .types import BootstrapContext, ExportContribution

if TYPE_CHECKING:  # pragma: no cover - type check only
    from ..config import PortanoteConfig
    from ..html.banner import BannerProvider


class PortanoteHookSpec:
    """Collection of pluggy hook specifications."""

    @hookspec
    def export_formats(self) -> Iterable[ExportContribution]:
        """Return exporter contributions (format handlers) provided by the plugin."""

    @hookspec
    def bootstrap(self, context: BootstrapContext) -> None:
        """Receive configuration once at startup."""

    @hookspec(firstresult=True)
    def banner_provider(self, config: "PortanoteConfig") -> "BannerProvider | None":
        """Return an object supplying banner defaults, or ``None``."""
