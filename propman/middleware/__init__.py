"""Request/response middleware."""
