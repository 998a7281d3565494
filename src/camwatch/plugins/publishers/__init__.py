"""Event publisher backends."""
