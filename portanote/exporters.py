"""Portanote export error types."""

from __future__ import annotations


class ExportError(RuntimeError):
    """Raised when exporting a note fails."""


class PdfApiError(ExportError):
    """Raised when the remote PDF rendering service rejects a request."""


__all__ = ["ExportError", "PdfApiError"]
