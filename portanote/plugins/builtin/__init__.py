"""Built-in Portanote plugins."""

from __future__ import annotations

from . import html, markdown, pdf

BUILTIN_PLUGINS = (html, markdown, pdf)

__all__ = ["BUILTIN_PLUGINS"]
