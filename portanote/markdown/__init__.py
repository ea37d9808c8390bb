"""Text passes that make vault Markdown portable."""
