"""Configuration schema, loading and profile paths."""
