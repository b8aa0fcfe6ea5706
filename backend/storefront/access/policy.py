"""
Access policy evaluation.

This module decides whether a principal may act on a stored record:
- Scope checks against the token's permission strings (403 on failure)
- Record-level ownership checks per ownership variant (404 on failure)
- Visibility filtering for listings

Invariants:
    - authorize() is pure: no I/O, no mutation
    - Every record-level denial is reported as NotFound, so callers never
      learn that a record they cannot see exists
    - read, update and delete share one membership predicate; the action
      is carried in the Decision for logging
    - membership_condition() expresses the same predicate as a store
      condition, so conditional writes and authorize() never disagree

How to change safely:
    - Changing a variant evaluator requires changing membership_condition()
    - Tighten per-action rules by branching on Decision.action, not by
      adding new entry points
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..errors import AccessDeniedError, NotFoundError
from ..store.base import And, Condition, Contains, Equals, Exists, NotExists, Or
from .ownership import (
    FamilyShared,
    InvalidOwnershipError,
    OwnerSet,
    OwnershipDescriptor,
    SingleOwner,
    descriptor_from_record,
    normalize,
)
from .principal import Action, Principal

logger = logging.getLogger(__name__)


class ResourceKind(Enum):
    """Record kinds protected by ownership."""

    USER = "user"
    CATEGORY = "category"
    PRODUCT = "product"

    @property
    def id_field(self) -> str:
        return {
            ResourceKind.USER: "userId",
            ResourceKind.CATEGORY: "categoryId",
            ResourceKind.PRODUCT: "productId",
        }[self]


@dataclass(frozen=True)
class Decision:
    """Outcome of an authorization check.

    Attributes:
        allowed: Whether the action is permitted
        reason: Which rule matched (or why none did)
        action: The action that was checked
    """

    allowed: bool
    reason: str
    action: Action

    def __bool__(self) -> bool:
        return self.allowed


def _allow(reason: str, action: Action) -> Decision:
    return Decision(allowed=True, reason=reason, action=action)


def _deny(reason: str, action: Action) -> Decision:
    return Decision(allowed=False, reason=reason, action=action)


class AccessPolicyEvaluator:
    """Evaluates ownership-based access to users, categories and products.

    Thread safety:
        This class is stateless and thread-safe.

    Example:
        >>> evaluator = AccessPolicyEvaluator()
        >>> p = Principal(subject_id="u1")
        >>> evaluator.authorize(p, ResourceKind.PRODUCT, {"ownerIds": {"u1"}}, Action.READ)
        Decision(allowed=True, reason='owner-set member', action=<Action.READ: 'read'>)
    """

    def authorize(
        self,
        principal: Principal,
        kind: ResourceKind,
        record: dict[str, Any],
        action: Action,
    ) -> Decision:
        """Decide whether principal may perform action on record."""
        subject = principal.subject_id

        if kind is ResourceKind.USER:
            if record.get("userId") == subject:
                return _allow("self", action)
            if record.get("ownerId") == subject:
                return _allow("creator", action)
            family_id = record.get("familyId")
            if family_id and family_id == principal.group_id:
                return _allow("same family", action)

        try:
            descriptor = normalize(descriptor_from_record(record, kind.id_field))
        except InvalidOwnershipError:
            return _deny("no ownership attributes", action)

        return self._evaluate(principal, descriptor, action)

    def _evaluate(
        self,
        principal: Principal,
        descriptor: OwnershipDescriptor,
        action: Action,
    ) -> Decision:
        if isinstance(descriptor, OwnerSet):
            if principal.subject_id in descriptor.members():
                return _allow("owner-set member", action)
            return _deny("not in owner set", action)

        if isinstance(descriptor, FamilyShared):
            if principal.subject_id == descriptor.owner_id:
                return _allow("family owner", action)
            if principal.group_id == descriptor.family_id:
                return _allow("family member", action)
            return _deny("outside family", action)

        if isinstance(descriptor, SingleOwner):
            if principal.subject_id == descriptor.owner_id:
                return _allow("single owner", action)
            return _deny("not the owner", action)

        return _deny("unknown ownership variant", action)

    def filter_visible(
        self,
        principal: Principal,
        kind: ResourceKind,
        records: Iterable[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Keep the records principal may read (O(n) over the collection)."""
        return [r for r in records if self.authorize(principal, kind, r, Action.READ).allowed]

    def check_or_raise(
        self,
        principal: Principal,
        kind: ResourceKind,
        record: dict[str, Any] | None,
        action: Action,
        record_id: str,
    ) -> dict[str, Any]:
        """Return the record if the action is allowed.

        Raises:
            NotFoundError: If the record is missing or the action is denied
        """
        if record is None:
            raise NotFoundError(
                f"{kind.value.capitalize()} {record_id} not found",
                resource_type=kind.value,
                resource_id=record_id,
            )

        decision = self.authorize(principal, kind, record, action)
        if not decision.allowed:
            logger.info(
                "Record access denied",
                extra={
                    "actor": str(principal),
                    "kind": kind.value,
                    "record_id": record_id,
                    "action": action.value,
                    "reason": decision.reason,
                },
            )
            raise NotFoundError(
                f"{kind.value.capitalize()} {record_id} not found",
                resource_type=kind.value,
                resource_id=record_id,
            )
        return record

    def require_scopes(self, principal: Principal, *scopes: str) -> None:
        """Ensure the token grants every scope.

        Raises:
            AccessDeniedError: If any scope is missing
        """
        missing = principal.missing_scopes(*scopes)
        if missing:
            raise AccessDeniedError(
                f"Missing permission(s): {', '.join(missing)}",
                actor=str(principal),
                missing_scopes=missing,
            )


def membership_condition(principal: Principal, kind: ResourceKind) -> Condition:
    """Store condition equivalent to authorize() for an existing record.

    Used on conditional writes so a record whose ownership changed between
    the read and the write is not mutated.
    """
    subject = principal.subject_id
    branches: list[Condition] = [
        Contains("ownerIds", subject),
        Equals("ownerId", subject),
        And(NotExists("ownerIds"), Exists("ownerId"), Equals("familyId", principal.group_id)),
    ]
    if kind is ResourceKind.USER:
        branches.append(Equals("userId", subject))
        branches.append(Equals("familyId", principal.group_id))
    return Or(*branches)
