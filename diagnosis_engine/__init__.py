"""Consulting diagnostics chat engine."""
