"""Service layer orchestrating exports."""
