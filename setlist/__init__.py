"""Setlist Connect: collaborative gig planning over a shared song library."""
