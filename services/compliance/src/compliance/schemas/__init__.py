"""Request/response schemas for the compliance service API."""
