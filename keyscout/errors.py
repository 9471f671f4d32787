"""Exception types raised by keyscout.

Store unavailability is reported as the builtin ``ConnectionError`` by
``keyscout.db.connection.get_pool``.
"""

from __future__ import annotations


class KeyscoutError(Exception):
    """Base class for keyscout errors."""


class InvalidPatternError(KeyscoutError):
    """A validator declared a recognition pattern that does not compile."""

    def __init__(self, validator: str, pattern: str, reason: str) -> None:
        super().__init__(f"Invalid pattern for {validator}: {pattern!r} ({reason})")
        self.validator = validator
        self.pattern = pattern


class DuplicateIssuerError(KeyscoutError):
    """Two validators were registered for the same issuer."""


class SearchProviderError(KeyscoutError):
    """The code search backend failed or refused a query."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingTokenError(KeyscoutError):
    """No enabled search provider token is configured."""
