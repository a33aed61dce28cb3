"""
Exceptions that cross the data layer boundary.

Only validation failures propagate to callers. Connectivity and permission
failures are carried as ``ErrorKind`` values (see ``lumen.core.results``) and
absorbed by the component that touched the network.
"""

from __future__ import annotations


class LumenError(Exception):
    """Base class for all data layer errors."""


class ValidationError(LumenError):
    """A logical constraint was violated (bad input, missing field)."""


class DuplicateEmailError(ValidationError):
    """An identity with the same email (case-insensitive) already exists."""

    def __init__(self, email: str, source: str = "remote"):
        self.email = email
        self.source = source
        super().__init__(f"Identity already registered for {email} ({source})")


class IllegalTransitionError(ValidationError):
    """A learning flow transition was attempted from the wrong state."""
