"""Command-line interface for platshim."""
