"""
Principals and permission scopes.

A Principal is the verified identity behind a request, built from the
claims of a Cognito access/id token:
- sub: the caller's user id
- custom:permissions: comma-separated scope list ("Products:Read,Users:Create")
- custom:familyId: family group the caller belongs to (optional)

Invariants:
    - Scopes use the canonical plural form <Group>:<Action>
    - Legacy singular group names ("Product:Read") are accepted on input
      and normalized
    - group_id is the family id when present, otherwise the subject id
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Action(Enum):
    """Record-level actions checked by the access policy."""

    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


# Singular group names found in older tokens -> canonical plural form
_LEGACY_GROUPS = {
    "User": "Users",
    "Category": "Categories",
    "Product": "Products",
    "Customer": "Customers",
    "Order": "Orders",
}


def normalize_scope(scope: str) -> str:
    """Return the canonical <Group>:<Action> form of a scope string.

    Example:
        >>> normalize_scope(" Product:Read ")
        'Products:Read'
    """
    scope = scope.strip()
    if ":" not in scope:
        return scope
    group, action = scope.split(":", 1)
    return f"{_LEGACY_GROUPS.get(group, group)}:{action}"


def parse_scopes(raw: Any) -> frozenset[str]:
    """Parse a permissions claim (comma-separated string or list)."""
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = list(raw)
    return frozenset(normalize_scope(p) for p in parts if p and p.strip())


@dataclass(frozen=True)
class Principal:
    """Verified caller identity.

    Attributes:
        subject_id: Token subject, equal to the caller's userId
        scopes: Permission scopes granted by the token
        family_id: Family group id, if the caller belongs to one
    """

    subject_id: str
    scopes: frozenset[str] = field(default_factory=frozenset)
    family_id: str | None = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> Principal:
        """Build a principal from verified token claims.

        Raises:
            ValueError: If the sub claim is missing
        """
        subject_id = claims.get("sub")
        if not subject_id:
            raise ValueError("Token has no sub claim")
        family_id = claims.get("custom:familyId") or claims.get("custom:familyOwnerId")
        return cls(
            subject_id=subject_id,
            scopes=parse_scopes(claims.get("custom:permissions")),
            family_id=family_id or None,
        )

    @property
    def group_id(self) -> str:
        """Family group used for family-shared comparisons."""
        return self.family_id or self.subject_id

    def has_scopes(self, *required: str) -> bool:
        return all(normalize_scope(s) in self.scopes for s in required)

    def missing_scopes(self, *required: str) -> list[str]:
        return sorted(
            normalized
            for normalized in (normalize_scope(s) for s in required)
            if normalized not in self.scopes
        )

    def __str__(self) -> str:
        return f"user:{self.subject_id}"
