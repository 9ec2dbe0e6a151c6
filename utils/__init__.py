"""Helpers: input validation for the catalog and output formatting for the CLI."""
