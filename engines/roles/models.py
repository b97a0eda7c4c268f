"""
IDTIX Roles Engine — Role Model
=================================
Roles are totally ordered by privilege:

    NONE < USER < ORGANIZER < SUPER_ADMIN
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Optional, Tuple

from core.commands.errors import reject
from core.commands.rejection import ReasonCode


class Role(IntEnum):
    NONE = 0
    USER = 1
    ORGANIZER = 2
    SUPER_ADMIN = 3

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def coerce(cls, value: Any) -> Optional["Role"]:
        """
        Accept a Role, its name ('ORGANIZER', 'organizer'), its label
        ('SuperAdmin'), or its int value. Returns None when unparseable.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return None
        if isinstance(value, str):
            key = value.strip().upper()
            for separator in ("_", "-", " "):
                key = key.replace(separator, "")
            return _BY_NORMALIZED_NAME.get(key)
        return None

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Like coerce(), but raises InvalidArgument when unparseable."""
        role = cls.coerce(value)
        if role is None:
            raise reject(
                ReasonCode.INVALID_ARGUMENT,
                f"Unknown role {value!r}.",
                "role_parse",
            )
        return role


_LABELS = {
    Role.NONE: "None",
    Role.USER: "User",
    Role.ORGANIZER: "Organizer",
    Role.SUPER_ADMIN: "SuperAdmin",
}

_BY_NORMALIZED_NAME = {role.name.replace("_", ""): role for role in Role}


@dataclass(frozen=True)
class RoleRecord:
    """Snapshot of a principal's role state."""
    principal: str
    history: Tuple[Role, ...]

    @property
    def current(self) -> Role:
        return self.history[-1] if self.history else Role.NONE
