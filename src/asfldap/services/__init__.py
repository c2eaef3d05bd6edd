"""Service layer built on top of the directory storage."""
