"""
Ownership descriptors.

Records carry ownership in one of three shapes, depending on when and by
which code path they were written:

    SingleOwner   {"ownerId": "u1"}
    OwnerSet      {"ownerIds": {"u1", "u2"}}  (ownerId may also be present
                  and names the creator)
    FamilyShared  {"ownerId": "u1", "familyId": "f1"} without ownerIds

Invariants:
    - Detection order is ownerIds, then familyId, then ownerId
    - normalize() is lossless: SingleOwner becomes a one-member OwnerSet,
      FamilyShared is kept as-is since family members appear in no id set
    - A record with none of the three attributes is invalid

How to change safely:
    - Adding a variant means adding an evaluator in policy.py and a
      membership condition in membership_condition()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from ..errors import InvalidInputError


@dataclass(frozen=True)
class SingleOwner:
    owner_id: str

    def members(self) -> frozenset[str]:
        return frozenset({self.owner_id})


@dataclass(frozen=True)
class OwnerSet:
    owner_ids: frozenset[str]
    creator_id: str | None = None

    def members(self) -> frozenset[str]:
        if self.creator_id:
            return self.owner_ids | {self.creator_id}
        return self.owner_ids


@dataclass(frozen=True)
class FamilyShared:
    owner_id: str
    family_id: str

    def members(self) -> frozenset[str]:
        return frozenset({self.owner_id})


OwnershipDescriptor = Union[SingleOwner, OwnerSet, FamilyShared]


class InvalidOwnershipError(InvalidInputError):
    """Record carries no recognizable ownership attributes."""

    def __init__(self, record_id: str | None) -> None:
        super().__init__(
            f"Record {record_id or '<unknown>'} has no ownership attributes",
            field_name="ownerIds",
        )


def descriptor_from_record(
    record: dict[str, Any],
    id_field: str | None = None,
) -> OwnershipDescriptor:
    """Detect the ownership shape of a stored record.

    Args:
        record: Stored document
        id_field: Key attribute, only used for error messages

    Raises:
        InvalidOwnershipError: If no ownership attribute is present
    """
    owner_ids = record.get("ownerIds")
    owner_id = record.get("ownerId") or None
    family_id = record.get("familyId") or None

    if owner_ids:
        return OwnerSet(owner_ids=frozenset(owner_ids), creator_id=owner_id)
    if family_id and owner_id:
        return FamilyShared(owner_id=owner_id, family_id=family_id)
    if owner_id:
        return SingleOwner(owner_id=owner_id)

    raise InvalidOwnershipError(record.get(id_field) if id_field else None)


def normalize(descriptor: OwnershipDescriptor) -> OwnershipDescriptor:
    """Convert the legacy single-owner shape to an owner set."""
    if isinstance(descriptor, SingleOwner):
        return OwnerSet(
            owner_ids=frozenset({descriptor.owner_id}),
            creator_id=descriptor.owner_id,
        )
    return descriptor


def build_owner_ids(*candidates: str | None) -> set[str]:
    """Collect the non-empty ids into an ownership set for a new record."""
    owner_ids = {c for c in candidates if c}
    if not owner_ids:
        raise InvalidInputError("Ownership set must not be empty", field_name="ownerIds")
    return owner_ids
