"""Storage layer for directory access."""
