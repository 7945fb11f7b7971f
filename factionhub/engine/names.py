"""
factionhub.engine.names — Encounter Name Validation
====================================================

Encounter logs are typed by hand, so every name in a log must take one of
two shapes:

* ``Firstname Lastname`` — an in-game character name, e.g. ``John Doe``
* ``@Handle``            — a Discord handle, e.g. ``@Davion``

Anything else is rejected, and *all* offending entries are reported in one
pass so the UI can highlight every bad name at once.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from factionhub.constants import (
    DISCORD_HANDLE_PATTERN,
    FULL_NAME_PATTERN,
    NAME_FORMAT_HINT,
)
from factionhub.errors import FieldError

__all__ = [
    "is_valid_name",
    "invalid_names",
    "normalize_name",
    "split_names",
    "validate_name_lists",
]


def is_valid_name(name: str) -> bool:
    return bool(FULL_NAME_PATTERN.match(name) or DISCORD_HANDLE_PATTERN.match(name))


def invalid_names(names: Iterable[str]) -> list[str]:
    """Return every entry of *names* that fits neither accepted shape."""
    return [name for name in names if not is_valid_name(name)]


def normalize_name(raw: str) -> str:
    """Strip a leading ``@`` and surrounding whitespace.

    Case is preserved; tallies are keyed on the stored spelling.
    """
    name = raw.strip()
    if name.startswith("@"):
        name = name[1:].strip()
    return name


def split_names(value: str | Iterable[str] | None) -> list[str]:
    """Accept a comma-separated string or a list and return clean entries."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else value
    return [p.strip() for p in parts if p and p.strip()]


def validate_name_lists(lists: Mapping[str, Iterable[str]]) -> list[FieldError]:
    """Check every name in every list; one :class:`FieldError` per bad entry.

    *lists* maps a field name (``"members_involved"``) to its names.
    """
    errors: list[FieldError] = []
    for field_name, names in lists.items():
        for index, name in enumerate(names):
            if not is_valid_name(name):
                errors.append(FieldError(
                    field=f"{field_name}[{index}]",
                    message=f"Invalid name format: {name!r}. {NAME_FORMAT_HINT}",
                    value=name,
                ))
    return errors
