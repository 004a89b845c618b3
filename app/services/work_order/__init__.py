"""Work-order generation services."""
