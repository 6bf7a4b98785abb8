"""Shared utilities: logging, sanitization and metrics."""
