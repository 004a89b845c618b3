"""Company detection services."""
