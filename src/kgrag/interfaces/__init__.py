"""User-facing interfaces (CLI)."""
