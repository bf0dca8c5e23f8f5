"""Directory context implementations."""
