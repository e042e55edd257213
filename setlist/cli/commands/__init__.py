"""Setlist CLI subcommand implementations."""
