"""Command-line interface for meshdoc."""
