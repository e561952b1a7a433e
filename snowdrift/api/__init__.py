"""HTTP endpoints of the ID service."""
