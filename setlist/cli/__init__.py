"""Setlist CLI — the ``setlist`` console script."""
