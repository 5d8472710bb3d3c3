"""Organic Groups exception hierarchy."""
from typing import Any


class OgException(Exception):
    """Base exception for all group access errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class InvalidMembership(OgException):
    """Membership cannot be created for an empty or anonymous user."""

    pass


class UnknownPermission(OgException):
    """No catalog entry matches the operation and bundle."""

    pass


class ConfigurationError(OgException):
    """Group registry or permission catalog is misconfigured."""

    pass


class InvalidGroupReference(OgException):
    """Group content references an entity that is not a group."""

    pass


class RoleLocked(OgException):
    """Built-in roles cannot be deleted or renamed."""

    pass
