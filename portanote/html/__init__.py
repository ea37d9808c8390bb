"""Standalone HTML export: styles, DOM post-processing, document assembly."""
