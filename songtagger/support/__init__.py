"""Request-independent helpers used by the HTTP layer."""
