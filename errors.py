"""Exceptions raised by the storefront functions.

Every error carries the HTTP status it maps to and a message in the
storefront's locale. Raw store errors never reach these messages.
"""
from typing import Any


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = extra
        super().__init__(message)

    def to_body(self) -> dict:
        return {**self.extra, "error": self.message}


class InvalidInput(StorefrontError):
    """Raised when a caller-supplied field is missing or malformed."""

    status_code = 400


class Unauthorized(StorefrontError):
    """Raised when the caller's identity is missing or cannot be verified."""

    status_code = 401


class Forbidden(StorefrontError):
    """Raised when the caller is known but lacks the required role."""

    status_code = 403


class NotFound(StorefrontError):
    """Raised when a lookup misses."""

    status_code = 404


class TooManyAttempts(StorefrontError):
    """Raised when a caller is temporarily blocked."""

    status_code = 429


class InternalError(StorefrontError):
    """Raised when the store or platform fails unexpectedly."""

    status_code = 500
