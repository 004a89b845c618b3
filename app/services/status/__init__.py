"""Per-file process status tracking."""
