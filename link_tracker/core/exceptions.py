"""
Custom Exceptions

This module defines the exception hierarchy used by the tracker services.

- ValidationError: bad operator input (surfaced as HTTP 400)
- NotFoundError: unknown link or visit (HTTP 404 on admin endpoints,
  fallback redirect on the tracking path)
- ExternalServiceError: public-IP / geo-IP lookups, always recovered locally
- DatabaseError: persistence failures (HTTP 500 on admin endpoints)
"""


class TrackerException(Exception):
    """Base exception for the link tracker service."""
    pass


class ValidationError(TrackerException):
    """Raised when operator-supplied input is rejected."""
    pass


class InvalidURLError(ValidationError):
    """Raised when a target URL is empty or malformed."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}" if url else reason)


class NotFoundError(TrackerException):
    """Raised when a requested entity does not exist."""
    pass


class LinkNotFoundError(NotFoundError):
    """Raised when a tracking link id is not found in the database."""

    def __init__(self, link_id: str):
        self.link_id = link_id
        super().__init__(f"Link '{link_id}' not found")


class VisitNotFoundError(NotFoundError):
    """Raised when a visit id is not found in the database."""

    def __init__(self, visit_id: int):
        self.visit_id = visit_id
        super().__init__(f"Visit '{visit_id}' not found")


class ExternalServiceError(TrackerException):
    """Raised when an outbound lookup service fails."""

    def __init__(self, service_name: str, message: str = "unavailable"):
        self.service_name = service_name
        super().__init__(f"Service '{service_name}' {message}")


class DatabaseError(TrackerException):
    """Raised when database operations fail."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
