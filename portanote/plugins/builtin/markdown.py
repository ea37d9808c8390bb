"""Built-in portable Markdown exporter plugin for Portanote."""

from __future__ import annotations

from ...services.export import ExportContext, ExportOutcome, ExportRequest, export_markdown_note
from .. import ExportContribution, hookimpl


def _export_markdown(*, context: ExportContext, request: ExportRequest) -> ExportOutcome:
    return export_markdown_note(context, request)


@hookimpl
def export_formats() -> tuple[ExportContribution, ...]:
    """Expose the built-in Markdown exporter as a plugin contribution."""

    contribution = ExportContribution(
        format_id="markdown",
        formatter=_export_markdown,
        description="Portable Markdown with embeds expanded and assets copied",
        extension=".md",
    )
    return (contribution,)
