"""Data models for directory entities."""
