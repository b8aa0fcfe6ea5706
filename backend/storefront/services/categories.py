"""
Category management.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from ..access.ownership import build_owner_ids
from ..access.policy import AccessPolicyEvaluator, ResourceKind
from ..access.principal import Action, Principal
from ..core.clock import utc_now
from ..core.integrity import ReferentialIntegrityCoordinator
from ..core.reports import CascadeReport
from ..errors import ConflictError, NotFoundError
from ..store.base import ConditionFailedError, DocumentStore, NotExists

logger = logging.getLogger(__name__)

TABLE = "categories"


class CategoryService:
    def __init__(
        self,
        store: DocumentStore,
        policy: AccessPolicyEvaluator,
        integrity: ReferentialIntegrityCoordinator,
    ) -> None:
        self.store = store
        self.policy = policy
        self.integrity = integrity

    async def list_categories(self, principal: Principal) -> list[dict[str, Any]]:
        categories = await self.store.scan(TABLE)
        return self.policy.filter_visible(principal, ResourceKind.CATEGORY, categories)

    async def get_category(self, principal: Principal, category_id: str) -> dict[str, Any]:
        category = await self.store.get(TABLE, category_id)
        return self.policy.check_or_raise(
            principal, ResourceKind.CATEGORY, category, Action.READ, category_id
        )

    async def create_category(self, principal: Principal, name: str) -> dict[str, Any]:
        """Create an empty category owned by the principal.

        Raises:
            NotFoundError: If the principal has no user record
        """
        user = await self.store.get("users", principal.subject_id)
        if user is None:
            raise NotFoundError(
                f"User {principal.subject_id} not found",
                resource_type="user",
                resource_id=principal.subject_id,
            )

        now = utc_now()
        category = {
            "categoryId": str(uuid.uuid4()),
            "categoryName": name,
            "ownerName": user.get("name"),
            "ownerId": principal.subject_id,
            "ownerIds": build_owner_ids(
                principal.subject_id, user.get("ownerId"), principal.family_id
            ),
            "productCount": 0,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            await self.store.put(TABLE, category, condition=NotExists("categoryId"))
        except ConditionFailedError:
            raise ConflictError(
                f"Category {category['categoryId']} already exists",
                reason="DUPLICATE_ID",
            ) from None

        logger.info(
            "Category created",
            extra={"category_id": category["categoryId"], "actor": str(principal)},
        )
        return category

    async def rename_category(
        self,
        principal: Principal,
        category_id: str,
        name: str,
    ) -> tuple[dict[str, Any], CascadeReport]:
        return await self.integrity.rename_category(principal, category_id, name)

    async def delete_category(self, principal: Principal, category_id: str) -> dict[str, Any]:
        return await self.integrity.delete_category(principal, category_id)
