"""Built-in PDF exporter plugin, backed by the remote rendering service."""

from __future__ import annotations

from ...services.export import ExportContext, ExportOutcome, ExportRequest, export_pdf_note
from .. import ExportContribution, hookimpl
from .html import current_templates_dir


def _export_pdf(*, context: ExportContext, request: ExportRequest) -> ExportOutcome:
    return export_pdf_note(context, request, templates_dir=current_templates_dir())


@hookimpl
def export_formats() -> tuple[ExportContribution, ...]:
    contribution = ExportContribution(
        format_id="pdf",
        formatter=_export_pdf,
        description="PDF rendered from the HTML export by the PDF service",
        extension=".pdf",
    )
    return (contribution,)
