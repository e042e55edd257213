"""Backend adapters and engine services for Setlist Connect."""
