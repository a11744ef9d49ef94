"""API middleware components."""
