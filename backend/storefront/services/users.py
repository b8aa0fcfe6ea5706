"""
User management.

Users are staff accounts: an identity in the Cognito user pool plus a
record in the users table. Creating a user makes it a collaborator of its
creator, so the creator's records are shared with it according to the
read scopes it is granted. Deleting a user revokes that sharing first.

Invariants:
    - Email is unique across users; checked before the identity is created
    - A new user's ownerIds always contains its creator
    - Deletion revokes shared ownership before the record and identity are
      removed; if revocation is partial nothing else is deleted, so the
      delete can simply be retried
"""

from __future__ import annotations

import logging
from typing import Any

from ..access.ownership import build_owner_ids
from ..access.policy import AccessPolicyEvaluator, ResourceKind, membership_condition
from ..access.principal import Action, Principal, normalize_scope
from ..clients.base import IdentityProvider, RealtimeNotifier
from ..core.clock import utc_now
from ..core.propagation import OwnershipPropagationEngine
from ..core.reports import CascadeReport
from ..errors import ConflictError, NotFoundError, UpstreamFailureError
from ..store.base import And, ConditionFailedError, DocumentStore, Equals, Exists, NotExists, Update

logger = logging.getLogger(__name__)

TABLE = "users"
DEFAULT_STATUS = "pending"

# Record field -> identity attribute
_IDENTITY_ATTRIBUTES = {
    "name": "name",
    "phoneNumber": "custom:phone_number",
    "role": "custom:role",
}


def identity_attributes(fields: dict[str, Any]) -> dict[str, str]:
    """Map user record fields onto identity provider attributes."""
    attributes = {
        attribute: str(fields[name])
        for name, attribute in _IDENTITY_ATTRIBUTES.items()
        if fields.get(name) is not None
    }
    if fields.get("permissions") is not None:
        attributes["custom:permissions"] = ",".join(fields["permissions"])
    return attributes


class UserService:
    """Lifecycle of staff users and their collaborator sharing."""

    def __init__(
        self,
        store: DocumentStore,
        policy: AccessPolicyEvaluator,
        propagation: OwnershipPropagationEngine,
        identity: IdentityProvider,
        notifier: RealtimeNotifier,
    ) -> None:
        self.store = store
        self.policy = policy
        self.propagation = propagation
        self.identity = identity
        self.notifier = notifier

    async def list_users(self, principal: Principal) -> list[dict[str, Any]]:
        """Users visible to the principal, excluding the principal itself."""
        users = await self.store.scan(TABLE)
        visible = self.policy.filter_visible(principal, ResourceKind.USER, users)
        return [u for u in visible if u.get("userId") != principal.subject_id]

    async def get_user(self, principal: Principal, user_id: str) -> dict[str, Any]:
        user = await self.store.get(TABLE, user_id)
        return self.policy.check_or_raise(principal, ResourceKind.USER, user, Action.READ, user_id)

    async def create_user(
        self,
        principal: Principal,
        fields: dict[str, Any],
    ) -> tuple[dict[str, Any], CascadeReport]:
        """Create the identity and record, then share the creator's records.

        Args:
            principal: Creator
            fields: name, role, permissions, email, phoneNumber

        Returns:
            The user record and the propagation report

        Raises:
            ConflictError: If the email is already registered
            UpstreamFailureError: If the identity cannot be created
        """
        email = fields["email"]
        existing = await self.store.scan(TABLE, filter=Equals("email", email))
        if existing:
            raise ConflictError(
                "A user with this email already exists",
                reason="DUPLICATE_EMAIL",
                details={"email": email},
            )

        permissions = sorted({normalize_scope(p) for p in fields.get("permissions") or []})
        attributes = {
            "email": email,
            **identity_attributes({**fields, "permissions": permissions}),
            "custom:familyId": principal.group_id,
        }
        user_id = await self.identity.create_user(email, attributes)

        try:
            status = await self.identity.get_user_status(email) or DEFAULT_STATUS
        except UpstreamFailureError as e:
            logger.warning(
                "Could not read identity status, using default",
                extra={"user_id": user_id, "error": e.message},
            )
            status = DEFAULT_STATUS

        now = utc_now()
        user = {
            "userId": user_id,
            "ownerId": principal.subject_id,
            "ownerIds": build_owner_ids(principal.subject_id),
            "familyId": principal.group_id,
            "name": fields.get("name"),
            "role": fields.get("role"),
            "permissions": permissions,
            "email": email,
            "phoneNumber": fields.get("phoneNumber"),
            "status": status,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.store.put(TABLE, user, condition=NotExists("userId"))
        except ConditionFailedError:
            raise ConflictError(
                f"User {user_id} already exists",
                reason="DUPLICATE_ID",
            ) from None

        report = await self.propagation.on_collaborator_added(
            principal.subject_id, user_id, permissions
        )
        logger.info(
            "User created",
            extra={
                "user_id": user_id,
                "actor": str(principal),
                "permissions": permissions,
                "shared_records": len(report.succeeded),
            },
        )
        return user, report

    async def update_user(
        self,
        principal: Principal,
        user_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Update profile fields on both the identity and the record."""
        user = await self.store.get(TABLE, user_id)
        self.policy.check_or_raise(principal, ResourceKind.USER, user, Action.UPDATE, user_id)

        changes = {
            k: v
            for k, v in fields.items()
            if k in ("name", "role", "permissions", "phoneNumber") and v is not None
        }
        if "permissions" in changes:
            changes["permissions"] = sorted({normalize_scope(p) for p in changes["permissions"]})

        await self.identity.update_user_attributes(user["email"], identity_attributes(changes))

        try:
            return await self.store.update(
                TABLE,
                user_id,
                Update(set_fields={**changes, "updatedAt": utc_now()}),
                condition=And(Exists("userId"), membership_condition(principal, ResourceKind.USER)),
            )
        except ConditionFailedError:
            raise NotFoundError(
                f"User {user_id} not found",
                resource_type="user",
                resource_id=user_id,
            ) from None

    async def delete_user(self, principal: Principal, user_id: str) -> CascadeReport:
        """Revoke sharing, notify open sessions, then remove record and identity.

        Raises:
            NotFoundError: If the user is missing or not visible
            PartialFailureError: If sharing could not be fully revoked
        """
        user = await self.store.get(TABLE, user_id)
        self.policy.check_or_raise(principal, ResourceKind.USER, user, Action.DELETE, user_id)

        report = await self.propagation.on_collaborator_removed(user_id)
        report.raise_for_partial()

        connection_id = user.get("connectionId")
        if connection_id:
            await self.notifier.push(connection_id, {"action": "clearLocalStorage"})

        try:
            await self.store.delete(
                TABLE,
                user_id,
                condition=And(Exists("userId"), membership_condition(principal, ResourceKind.USER)),
            )
        except ConditionFailedError:
            raise NotFoundError(
                f"User {user_id} not found",
                resource_type="user",
                resource_id=user_id,
            ) from None

        await self.identity.delete_user(user["email"])
        logger.info(
            "User deleted",
            extra={"user_id": user_id, "actor": str(principal), "revoked": len(report.succeeded)},
        )
        return report
