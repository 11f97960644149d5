"""External service integrations."""
