"""Dependency wiring for the CLI."""
