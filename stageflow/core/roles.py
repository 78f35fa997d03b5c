"""Canonical role enumeration.

Backends and older clients send role strings in several spellings
(``admin``, ``ADMIN``, ``trainer``, ``trainee``...). They are translated
here, once, at the API boundary; everything past the boundary compares
``Role`` members only.
"""

from enum import Enum
from typing import Dict, Optional


class Role(str, Enum):
    """Roles understood by the workflow service."""

    USER = "USER"
    ADMIN = "ADMIN"
    MODERATOR = "MODERATOR"
    REVIEWER = "REVIEWER"
    TRAINEE = "TRAINEE"


# Legacy or backend spellings that do not match a member name
ROLE_ALIASES: Dict[str, Role] = {
    "trainer": Role.TRAINEE,
    "approver": Role.REVIEWER,
    "administrator": Role.ADMIN,
}

# Roles allowed to manage workflow definitions
DEFINITION_MANAGERS = frozenset({Role.ADMIN})


def parse_role(value: Optional[str], default: Role = Role.USER) -> Role:
    """
    Translate an external role string into a ``Role``.

    Unknown or empty values map to ``default``.
    """
    if not value:
        return default

    normalized = value.strip()
    alias = ROLE_ALIASES.get(normalized.lower())
    if alias is not None:
        return alias

    try:
        return Role(normalized.upper())
    except ValueError:
        return default


def can_manage_definitions(role: Role) -> bool:
    return role in DEFINITION_MANAGERS
