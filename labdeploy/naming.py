"""Deterministic resource names.

Names are a digest of ``account|group`` so that every run against the same
subscription and resource group lands on the same registry, environment and
app instead of accumulating new ones.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from .exceptions import InvalidNameInputError
from .models import DerivedName, Role

__all__ = ["ROLE_RULES", "derive", "derive_names"]

_INPUT_RE = re.compile(r"^[A-Za-z0-9._()\-]+$")
_CHARSET = "a-z0-9"


@dataclass(frozen=True)
class RoleRule:
    prefix: str
    max_length: int


# ACR names are globally unique and capped at 50, but the lab portal truncates
# at 24; container app names are capped at 32.
ROLE_RULES: dict[Role, RoleRule] = {
    Role.REGISTRY: RoleRule(prefix="labacr", max_length=24),
    Role.ENV: RoleRule(prefix="labenv", max_length=32),
    Role.APP: RoleRule(prefix="labapp", max_length=32),
}


def _check_input(label: str, value: str) -> None:
    if not value or not _INPUT_RE.match(value):
        raise InvalidNameInputError(
            f"{label} {value!r} may only contain letters, digits, '.', '_',"
            " '-', '(' and ')'"
        )


def derive(account_id: str, group_id: str, role: Role | str) -> str:
    """Return the name for ``role`` scoped to ``(account_id, group_id)``."""
    _check_input("Account id", account_id)
    _check_input("Resource group", group_id)
    rule = ROLE_RULES[Role(role)]
    # Azure treats both identifiers case-insensitively.
    key = f"{account_id.lower()}|{group_id.lower()}"
    digest = hashlib.sha256(key.encode()).hexdigest()
    return (rule.prefix + digest)[: rule.max_length]


def derive_names(account_id: str, group_id: str) -> dict[Role, DerivedName]:
    """Derive every role's name once."""
    return {
        role: DerivedName(
            role=role,
            value=derive(account_id, group_id, role),
            max_length=rule.max_length,
            charset=_CHARSET,
        )
        for role, rule in ROLE_RULES.items()
    }
