"""Heartbeat scheduler."""
