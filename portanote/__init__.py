"""Portanote: export vault notes to portable HTML, Markdown and PDF."""

__version__ = "0.3.0"
