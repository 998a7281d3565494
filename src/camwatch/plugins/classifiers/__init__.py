"""Object classifier backends."""
