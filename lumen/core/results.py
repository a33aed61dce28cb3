"""
Typed outcomes for adapter calls.

Remote adapters never raise on infrastructure failure. Instead every call
returns either ``Ok(value)`` or ``Err(kind, detail)`` so callers branch on an
explicit ``ErrorKind`` rather than on caught exceptions.

Usage:
    result = await store.get("identities", "OP-442")
    if result.ok:
        record = result.value
    elif result.kind is ErrorKind.NOT_FOUND:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Why an adapter call failed."""

    UNCONFIGURED = "unconfigured"  # No credentials / demo mode
    CONNECTIVITY = "connectivity"  # No response, timeout, 5xx
    PERMISSION = "permission"  # Service responded, access denied
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"  # Revision mismatch on conditional write
    QUOTA = "quota"  # Rate limit / billing
    INVALID = "invalid"  # Malformed payload or rejected request

    @property
    def service_responded(self) -> bool:
        """True when the failure proves the service is reachable."""
        return self not in (ErrorKind.UNCONFIGURED, ErrorKind.CONNECTIVITY)


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful adapter call."""

    value: T

    ok = True
    kind = None


@dataclass(frozen=True)
class Err:
    """Failed adapter call."""

    kind: ErrorKind
    detail: str = ""

    ok = False

    @property
    def value(self) -> Any:
        raise AttributeError(f"Err({self.kind.value}) has no value: {self.detail}")


Result = Union[Ok[T], Err]


def status_to_kind(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind."""
    if status_code in (401, 403):
        return ErrorKind.PERMISSION
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if status_code in (409, 412):
        return ErrorKind.CONFLICT
    if status_code in (402, 429):
        return ErrorKind.QUOTA
    if status_code >= 500:
        return ErrorKind.CONNECTIVITY
    return ErrorKind.INVALID
