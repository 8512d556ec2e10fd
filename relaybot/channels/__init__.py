"""Provider adapter helpers."""
