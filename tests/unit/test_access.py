"""
Unit tests for principals, ownership descriptors and the access policy.

Tests cover:
- Claim parsing and legacy scope normalization
- Ownership shape detection and normalization
- Per-variant authorization, including non-members
- Agreement between authorize() and membership_condition()
"""

import pytest

from backend.storefront.access.ownership import (
    FamilyShared,
    InvalidOwnershipError,
    OwnerSet,
    SingleOwner,
    build_owner_ids,
    descriptor_from_record,
    normalize,
)
from backend.storefront.access.policy import (
    AccessPolicyEvaluator,
    ResourceKind,
    membership_condition,
)
from backend.storefront.access.principal import Action, Principal, normalize_scope, parse_scopes
from backend.storefront.errors import AccessDeniedError, InvalidInputError, NotFoundError


class TestPrincipal:
    """Tests for Principal construction and scopes."""

    def test_from_claims(self):
        """Claims map onto subject, scopes and family."""
        p = Principal.from_claims(
            {
                "sub": "u1",
                "custom:permissions": "Products:Read, Users:Create",
                "custom:familyId": "f1",
            }
        )
        assert p.subject_id == "u1"
        assert p.scopes == frozenset({"Products:Read", "Users:Create"})
        assert p.family_id == "f1"
        assert p.group_id == "f1"

    def test_family_owner_claim_fallback(self):
        """custom:familyOwnerId is accepted when custom:familyId is absent."""
        p = Principal.from_claims({"sub": "u1", "custom:familyOwnerId": "f9"})
        assert p.family_id == "f9"

    def test_group_defaults_to_subject(self):
        p = Principal.from_claims({"sub": "u1"})
        assert p.family_id is None
        assert p.group_id == "u1"

    def test_missing_sub_rejected(self):
        with pytest.raises(ValueError):
            Principal.from_claims({"custom:permissions": "Products:Read"})

    def test_legacy_singular_scopes_normalized(self):
        """Singular group names from older tokens become plural."""
        assert normalize_scope("Product:Read") == "Products:Read"
        assert normalize_scope(" Category:Delete ") == "Categories:Delete"
        assert normalize_scope("Orders:Refund") == "Orders:Refund"

    def test_parse_scopes_accepts_list(self):
        assert parse_scopes(["User:Read", "", "Orders:Read"]) == frozenset(
            {"Users:Read", "Orders:Read"}
        )

    def test_missing_scopes(self):
        p = Principal(subject_id="u1", scopes=frozenset({"Products:Read"}))
        assert p.has_scopes("Product:Read")
        assert p.missing_scopes("Products:Read", "Products:Delete") == ["Products:Delete"]

    def test_str_is_actor(self):
        assert str(Principal(subject_id="u1")) == "user:u1"


class TestOwnershipDescriptor:
    """Tests for ownership shape detection."""

    def test_owner_set_wins(self):
        """ownerIds takes precedence over familyId and ownerId."""
        d = descriptor_from_record({"ownerIds": {"a", "b"}, "ownerId": "a", "familyId": "f"})
        assert d == OwnerSet(owner_ids=frozenset({"a", "b"}), creator_id="a")

    def test_family_shared(self):
        d = descriptor_from_record({"ownerId": "a", "familyId": "f"})
        assert d == FamilyShared(owner_id="a", family_id="f")

    def test_single_owner(self):
        assert descriptor_from_record({"ownerId": "a"}) == SingleOwner(owner_id="a")

    def test_empty_owner_set_falls_through(self):
        """An empty ownerIds is treated as absent."""
        assert descriptor_from_record({"ownerIds": set(), "ownerId": "a"}) == SingleOwner("a")

    def test_no_ownership_is_invalid(self):
        with pytest.raises(InvalidOwnershipError):
            descriptor_from_record({"productId": "p1"}, "productId")

    def test_normalize_single_owner(self):
        """SingleOwner becomes a one-member owner set with the same creator."""
        d = normalize(SingleOwner("a"))
        assert d == OwnerSet(owner_ids=frozenset({"a"}), creator_id="a")

    def test_normalize_keeps_family_shared(self):
        d = FamilyShared(owner_id="a", family_id="f")
        assert normalize(d) is d

    def test_creator_is_member(self):
        d = OwnerSet(owner_ids=frozenset({"b"}), creator_id="a")
        assert d.members() == frozenset({"a", "b"})

    def test_build_owner_ids(self):
        assert build_owner_ids("a", None, "", "a", "f") == {"a", "f"}

    def test_build_owner_ids_never_empty(self):
        with pytest.raises(InvalidInputError):
            build_owner_ids(None, "")


class TestAccessPolicy:
    """Tests for AccessPolicyEvaluator."""

    @pytest.fixture
    def evaluator(self):
        return AccessPolicyEvaluator()

    @pytest.mark.parametrize(
        "record",
        [
            {"productId": "p1", "ownerIds": {"a", "b"}},
            {"productId": "p1", "ownerId": "a", "familyId": "fam-a"},
            {"productId": "p1", "ownerId": "a"},
        ],
    )
    @pytest.mark.parametrize("action", list(Action))
    def test_non_member_denied(self, evaluator, record, action):
        """A principal outside the record's ownership is denied for every variant."""
        outsider = Principal(subject_id="z", family_id="fam-z")
        decision = evaluator.authorize(outsider, ResourceKind.PRODUCT, record, action)
        assert not decision
        assert decision.action is action

    def test_owner_set_member_allowed(self, evaluator):
        record = {"productId": "p1", "ownerIds": {"a", "b"}}
        assert evaluator.authorize(Principal("b"), ResourceKind.PRODUCT, record, Action.UPDATE)

    def test_owner_set_creator_allowed(self, evaluator):
        """ownerId counts as a member even when missing from ownerIds."""
        record = {"productId": "p1", "ownerIds": {"b"}, "ownerId": "a"}
        assert evaluator.authorize(Principal("a"), ResourceKind.PRODUCT, record, Action.DELETE)

    def test_family_member_allowed(self, evaluator):
        record = {"productId": "p1", "ownerId": "a", "familyId": "fam"}
        member = Principal("c", family_id="fam")
        decision = evaluator.authorize(member, ResourceKind.PRODUCT, record, Action.READ)
        assert decision
        assert decision.reason == "family member"

    def test_family_owner_allowed(self, evaluator):
        record = {"productId": "p1", "ownerId": "a", "familyId": "fam"}
        assert evaluator.authorize(Principal("a"), ResourceKind.PRODUCT, record, Action.READ)

    def test_single_owner_allowed(self, evaluator):
        record = {"categoryId": "c1", "ownerId": "a"}
        assert evaluator.authorize(Principal("a"), ResourceKind.CATEGORY, record, Action.READ)

    def test_invalid_ownership_denied(self, evaluator):
        record = {"productId": "p1", "name": "orphan"}
        decision = evaluator.authorize(Principal("a"), ResourceKind.PRODUCT, record, Action.READ)
        assert not decision
        assert decision.reason == "no ownership attributes"

    def test_user_self_and_creator(self, evaluator):
        record = {"userId": "b", "ownerId": "a", "ownerIds": {"a"}, "familyId": "a"}
        assert evaluator.authorize(Principal("b"), ResourceKind.USER, record, Action.READ)
        assert evaluator.authorize(Principal("a"), ResourceKind.USER, record, Action.DELETE)

    def test_user_same_family(self, evaluator):
        record = {"userId": "b", "ownerId": "a", "ownerIds": {"a"}, "familyId": "a"}
        sibling = Principal("c", family_id="a")
        assert evaluator.authorize(sibling, ResourceKind.USER, record, Action.READ)

    def test_filter_visible(self, evaluator):
        records = [
            {"productId": "p1", "ownerIds": {"a"}},
            {"productId": "p2", "ownerIds": {"b"}},
            {"productId": "p3", "ownerId": "a"},
        ]
        visible = evaluator.filter_visible(Principal("a"), ResourceKind.PRODUCT, records)
        assert [r["productId"] for r in visible] == ["p1", "p3"]

    def test_check_or_raise_hides_existence(self, evaluator):
        """Denied and missing records both surface as NotFound."""
        with pytest.raises(NotFoundError):
            evaluator.check_or_raise(
                Principal("z"), ResourceKind.PRODUCT, {"ownerId": "a"}, Action.READ, "p1"
            )
        with pytest.raises(NotFoundError):
            evaluator.check_or_raise(Principal("a"), ResourceKind.PRODUCT, None, Action.READ, "p1")

    def test_require_scopes(self, evaluator):
        p = Principal("a", scopes=frozenset({"Products:Read"}))
        evaluator.require_scopes(p, "Products:Read")
        with pytest.raises(AccessDeniedError) as exc_info:
            evaluator.require_scopes(p, "Products:Read", "Products:Delete")
        assert exc_info.value.missing_scopes == ["Products:Delete"]
        assert exc_info.value.status_code == 403


class TestMembershipCondition:
    """membership_condition() must agree with authorize() on existing records."""

    RECORDS = [
        {"productId": "p1", "ownerIds": {"a", "b"}},
        {"productId": "p2", "ownerIds": {"b"}, "ownerId": "a"},
        {"productId": "p3", "ownerId": "a", "familyId": "fam"},
        {"productId": "p4", "ownerId": "a"},
        {"productId": "p5", "ownerId": "x", "familyId": "other"},
        {"productId": "p6", "ownerIds": {"x"}, "familyId": "fam"},
    ]

    PRINCIPALS = [
        Principal("a"),
        Principal("b"),
        Principal("c", family_id="fam"),
        Principal("z", family_id="other-z"),
    ]

    @pytest.mark.parametrize("record", RECORDS)
    @pytest.mark.parametrize("principal", PRINCIPALS)
    def test_agrees_with_authorize(self, record, principal):
        evaluator = AccessPolicyEvaluator()
        expected = evaluator.authorize(principal, ResourceKind.PRODUCT, record, Action.UPDATE).allowed
        condition = membership_condition(principal, ResourceKind.PRODUCT)
        assert condition.evaluate(record) is expected
