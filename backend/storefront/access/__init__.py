"""
Access control for Storefront records.

This package provides:
- Principal: verified caller identity and permission scopes
- Ownership descriptors: SingleOwner, OwnerSet, FamilyShared
- AccessPolicyEvaluator: record-level authorization and visibility filtering
"""

from .ownership import (
    FamilyShared,
    InvalidOwnershipError,
    OwnerSet,
    OwnershipDescriptor,
    SingleOwner,
    build_owner_ids,
    descriptor_from_record,
    normalize,
)
from .policy import (
    AccessPolicyEvaluator,
    Decision,
    ResourceKind,
    membership_condition,
)
from .principal import Action, Principal, normalize_scope, parse_scopes

__all__ = [
    "AccessPolicyEvaluator",
    "Action",
    "Decision",
    "FamilyShared",
    "InvalidOwnershipError",
    "OwnerSet",
    "OwnershipDescriptor",
    "Principal",
    "ResourceKind",
    "SingleOwner",
    "build_owner_ids",
    "descriptor_from_record",
    "membership_condition",
    "normalize",
    "normalize_scope",
    "parse_scopes",
]
