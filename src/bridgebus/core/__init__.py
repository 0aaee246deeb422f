"""Core event bus components."""
