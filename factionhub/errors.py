"""
factionhub.errors — Typed Failures
===================================

Every service raises one of these.  The API layer maps them to HTTP:

==================  ======
ValidationError     400
PermissionDenied    403
NotFoundError       404
ConflictError       409
==================  ======

Best-effort collaborator failures (webhooks, guild directory) never show
up here; they are caught and logged where they happen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class FactionHubError(Exception):
    """Base class for every typed failure raised by the core."""


@dataclass(frozen=True, slots=True)
class FieldError:
    """One offending field (or one offending entry inside a list field)."""

    field: str
    message: str
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "value": self.value}


class ValidationError(FactionHubError):
    """Malformed input.  Carries *every* offending field, not just the first."""

    def __init__(self, errors: list[FieldError], message: str = "Validation failed") -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors)

    @property
    def invalid_values(self) -> list[Any]:
        return [e.value for e in self.errors]


class PermissionDenied(FactionHubError):
    """The actor's role does not allow this operation."""


class ConflictError(FactionHubError):
    """The request is well-formed but clashes with current state.

    ``state`` holds the authoritative values so the client can explain why.
    """

    def __init__(self, message: str, state: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state or {}


class NotFoundError(FactionHubError):
    """A war, log or regulations row could not be resolved."""
