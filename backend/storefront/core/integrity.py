"""
Referential integrity between categories and products.

Products reference categories by id and carry a denormalized copy of the
category name. Categories keep a count of the products referencing them.
This coordinator owns every write that touches both sides.

Invariants:
    - A product is only created against a category the caller can see
    - productCount is incremented after the product is written; a product
      whose increment fails is deleted again before the error is raised
    - A product delete records its pending decrement in the cascade ledger
      first, so a delete whose decrement failed is finished by the next
      delete of the same product id
    - A category with productCount > 0 cannot be deleted; the delete itself
      is conditional on productCount = 0 so a concurrent create cannot slip
      through between the check and the delete
    - A rename writes the category first, then every referencing product;
      products missed by a failed run are picked up by the next run via the
      cascade ledger

How to change safely:
    - Moving products between categories must decrement the old counter and
      increment the new one; it is not supported yet
    - Keep the rename cascade conditional on categoryId so products moved
      or deleted meanwhile are not touched
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from ..access.ownership import build_owner_ids
from ..access.policy import AccessPolicyEvaluator, ResourceKind, membership_condition
from ..access.principal import Action, Principal
from ..errors import ConflictError, InvalidCategoryError, NotFoundError, PartialFailureError
from ..store.base import (
    And,
    ConditionFailedError,
    Contains,
    DocumentStore,
    Equals,
    Exists,
    NotEquals,
    NotExists,
    Or,
    StoreError,
    Update,
)
from .counters import COUNT_FIELD, ProductCountMaintainer
from .clock import utc_now
from .ledger import CascadeLedger, MemberWrite, run_members
from .reports import CascadeReport, member_key
from .retry import with_retries

logger = logging.getLogger(__name__)


class ReferentialIntegrityCoordinator:
    """Keeps categories and products consistent with each other.

    Attributes:
        store: Document store
        policy: Access policy evaluator
        counters: productCount maintainer
        ledger: Cascade ledger for renames and product deletes
        scrub_owner_on_category_delete: Legacy ownership scrub on delete
    """

    def __init__(
        self,
        store: DocumentStore,
        policy: AccessPolicyEvaluator,
        counters: ProductCountMaintainer,
        ledger: CascadeLedger,
        scrub_owner_on_category_delete: bool = False,
        max_retries: int = 3,
        retry_delay_ms: int = 100,
        max_concurrency: int = 8,
    ) -> None:
        self.store = store
        self.policy = policy
        self.counters = counters
        self.ledger = ledger
        self.scrub_owner_on_category_delete = scrub_owner_on_category_delete
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.max_concurrency = max_concurrency

    async def require_category(self, principal: Principal, category_id: str) -> dict[str, Any]:
        """Load a category the principal can read.

        Raises:
            InvalidCategoryError: If it is missing or not visible
        """
        category = await self.store.get("categories", category_id) if category_id else None
        if category is None:
            raise InvalidCategoryError(category_id)
        if not self.policy.authorize(principal, ResourceKind.CATEGORY, category, Action.READ):
            raise InvalidCategoryError(category_id)
        return category

    async def create_product(
        self,
        principal: Principal,
        category_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Write a product and count it against its category.

        Raises:
            InvalidCategoryError: If the category is missing, not visible, or
                disappears before it could be counted
            StoreError: If the counter could not be updated; the product is
                removed again first
        """
        category = await self.require_category(principal, category_id)

        user = await self.store.get("users", principal.subject_id)
        creator_owner = user.get("ownerId") if user else None

        now = utc_now()
        product = {
            **fields,
            "productId": fields.get("productId") or str(uuid.uuid4()),
            "categoryId": category_id,
            "categoryName": category.get("categoryName", ""),
            "ownerId": principal.subject_id,
            "ownerIds": build_owner_ids(principal.subject_id, creator_owner, principal.family_id),
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            await self.store.put("products", product, condition=NotExists("productId"))
        except ConditionFailedError:
            raise ConflictError(
                f"Product {product['productId']} already exists",
                reason="DUPLICATE_ID",
            ) from None

        try:
            count = await self.counters.increment(category_id)
        except NotFoundError:
            # Category deleted between the check and the increment
            await self._remove_uncounted(product["productId"], category_id)
            raise InvalidCategoryError(category_id) from None
        except StoreError:
            await self._remove_uncounted(product["productId"], category_id)
            raise

        logger.info(
            "Product created",
            extra={
                "product_id": product["productId"],
                "category_id": category_id,
                "product_count": count,
                "actor": str(principal),
            },
        )
        return product

    async def rename_category(
        self,
        principal: Principal,
        category_id: str,
        new_name: str,
    ) -> tuple[dict[str, Any], CascadeReport]:
        """Rename a category and cascade the name to its products.

        Returns:
            The updated category and the cascade report. A report with
            failed members means the rename must be retried.

        Raises:
            NotFoundError: If the category is missing or not visible
        """
        category = await self.store.get("categories", category_id)
        self.policy.check_or_raise(
            principal, ResourceKind.CATEGORY, category, Action.UPDATE, category_id
        )

        try:
            category = await self.store.update(
                "categories",
                category_id,
                Update(set_fields={"categoryName": new_name, "updatedAt": utc_now()}),
                condition=And(
                    Exists("categoryId"),
                    membership_condition(principal, ResourceKind.CATEGORY),
                ),
            )
        except ConditionFailedError:
            raise NotFoundError(
                f"Category {category_id} not found",
                resource_type="category",
                resource_id=category_id,
            ) from None

        operation_id = f"category-rename:{category_id}"
        report = CascadeReport(operation_id=operation_id, kind="category-rename")
        completed = await self.ledger.begin(
            operation_id, report.kind, {"categoryName": new_name}
        )

        products = await self.store.scan("products", filter=Equals("categoryId", category_id))
        members: list[tuple[str, MemberWrite]] = []
        for product in products:
            member = member_key("products", product["productId"])
            if product.get("categoryName") == new_name:
                report.skipped.append(member)
                continue
            members.append((member, self._renamer(product["productId"], category_id, new_name)))

        await run_members(
            self.ledger,
            report,
            members,
            completed,
            max_retries=self.max_retries,
            retry_delay_ms=self.retry_delay_ms,
            max_concurrency=self.max_concurrency,
        )

        logger.log(
            logging.INFO if report.complete else logging.WARNING,
            "Category renamed",
            extra={
                "category_id": category_id,
                "products_updated": len(report.succeeded),
                "products_failed": len(report.failed),
                "actor": str(principal),
            },
        )
        return category, report

    async def delete_category(self, principal: Principal, category_id: str) -> dict[str, Any]:
        """Delete an empty category.

        Raises:
            NotFoundError: If the category is missing or not visible
            ConflictError: If products still reference it
        """
        category = await self.store.get("categories", category_id)
        self.policy.check_or_raise(
            principal, ResourceKind.CATEGORY, category, Action.DELETE, category_id
        )
        self._raise_if_has_products(category)

        if self.scrub_owner_on_category_delete:
            await self._scrub_owner(principal, category_id)

        try:
            await self.store.delete(
                "categories",
                category_id,
                condition=And(
                    Or(NotExists(COUNT_FIELD), Equals(COUNT_FIELD, 0)),
                    membership_condition(principal, ResourceKind.CATEGORY),
                ),
            )
        except ConditionFailedError:
            current = await self.store.get("categories", category_id)
            if current is not None:
                self._raise_if_has_products(current)
            raise NotFoundError(
                f"Category {category_id} not found",
                resource_type="category",
                resource_id=category_id,
            ) from None

        logger.info(
            "Category deleted",
            extra={"category_id": category_id, "actor": str(principal)},
        )
        return category

    async def delete_product(self, principal: Principal, product_id: str) -> dict[str, Any]:
        """Delete a product and uncount it from its category.

        The pending decrement is recorded in the ledger before the product
        is deleted. If the decrement then fails, the entry is left partial
        and a repeated delete of the same product finishes it.

        Raises:
            NotFoundError: If the product is missing or not visible
            PartialFailureError: If the product was deleted but its category
                counter could not be updated; repeat the delete
        """
        product = await self.store.get("products", product_id)
        if product is None:
            return await self._resume_delete(principal, product_id)
        self.policy.check_or_raise(
            principal, ResourceKind.PRODUCT, product, Action.DELETE, product_id
        )

        operation_id = f"{PRODUCT_DELETE}:{product_id}"
        earlier = await self.ledger.claim(operation_id, PRODUCT_DELETE)
        if earlier is not None:
            # A previous product with this id still owes its decrement
            await self._settle_decrement(
                operation_id, product_id, earlier["params"]["categoryId"]
            )

        category_id = product.get("categoryId")
        if category_id:
            await self.ledger.begin(operation_id, PRODUCT_DELETE, _delete_params(product))

        try:
            deleted = await self.store.delete(
                "products",
                product_id,
                condition=And(
                    Exists("productId"),
                    membership_condition(principal, ResourceKind.PRODUCT),
                ),
            )
        except ConditionFailedError:
            deleted = None
        if deleted is None:
            if category_id:
                # Nothing was deleted, so nothing is owed to the counter
                await self.ledger.finish(operation_id, complete=True)
            raise _product_not_found(product_id)

        if category_id:
            await self._settle_decrement(operation_id, product_id, category_id)

        logger.info(
            "Product deleted",
            extra={"product_id": product_id, "category_id": category_id, "actor": str(principal)},
        )
        return deleted

    async def _resume_delete(self, principal: Principal, product_id: str) -> dict[str, Any]:
        """Finish the counter update of an earlier, partially failed delete."""
        operation_id = f"{PRODUCT_DELETE}:{product_id}"
        entry = await self.ledger.get(operation_id)
        if entry is None or entry.get("status") != "partial":
            raise _product_not_found(product_id)

        snapshot = {"productId": product_id, **(entry.get("params") or {})}
        if not self.policy.authorize(principal, ResourceKind.PRODUCT, snapshot, Action.DELETE):
            raise _product_not_found(product_id)
        if await self.ledger.claim(operation_id, PRODUCT_DELETE) is None:
            raise _product_not_found(product_id)

        await self._settle_decrement(operation_id, product_id, snapshot["categoryId"])
        logger.info(
            "Product delete completed",
            extra={
                "product_id": product_id,
                "category_id": snapshot["categoryId"],
                "actor": str(principal),
            },
        )
        return {"productId": product_id, "categoryId": snapshot["categoryId"]}

    async def _settle_decrement(self, operation_id: str, product_id: str, category_id: str) -> None:
        member = member_key("categories", category_id)
        try:
            await self.counters.decrement(category_id)
        except StoreError as e:
            await self.ledger.finish(operation_id, complete=False)
            logger.warning(
                "Product deleted but category count not updated",
                extra={"product_id": product_id, "category_id": category_id, "error": str(e)},
            )
            raise PartialFailureError(
                CascadeReport(
                    operation_id=operation_id,
                    kind=PRODUCT_DELETE,
                    succeeded=[member_key("products", product_id)],
                    failed={member: str(e)},
                )
            ) from e

        await self.ledger.record_member(operation_id, member)
        await self.ledger.finish(operation_id, complete=True)

    async def _remove_uncounted(self, product_id: str, category_id: str) -> None:
        """Delete a product whose category increment did not happen."""
        try:
            await with_retries(
                lambda: self.store.delete("products", product_id),
                max_retries=self.max_retries,
                retry_delay_ms=self.retry_delay_ms,
                description="uncounted product removal",
            )
        except StoreError as e:
            logger.error(
                "Could not remove uncounted product",
                extra={"product_id": product_id, "category_id": category_id, "error": str(e)},
            )

    def _raise_if_has_products(self, category: dict[str, Any]) -> None:
        count = int(category.get(COUNT_FIELD) or 0)
        if count > 0:
            raise ConflictError(
                "Cannot delete category: products are linked to it, delete them first",
                reason="HAS_PRODUCTS",
                details={"categoryId": category.get("categoryId"), "productCount": count},
            )

    def _renamer(self, product_id: str, category_id: str, new_name: str) -> MemberWrite:
        async def write() -> Any:
            return await self.store.update(
                "products",
                product_id,
                Update(set_fields={"categoryName": new_name}),
                condition=Equals("categoryId", category_id),
            )

        return write

    async def _scrub_owner(self, principal: Principal, category_id: str) -> None:
        """Remove the deleting owner from products of the category."""
        subject = principal.subject_id
        products = await self.store.scan(
            "products",
            filter=And(Equals("categoryId", category_id), Contains("ownerIds", subject)),
        )
        for product in products:
            if set(product.get("ownerIds") or ()) <= {subject}:
                continue
            try:
                await self.store.update(
                    "products",
                    product["productId"],
                    Update(set_remove={"ownerIds": {subject}}),
                    condition=And(
                        Exists("productId"),
                        Or(NotExists("ownerId"), NotEquals("ownerId", subject)),
                    ),
                )
            except ConditionFailedError:
                continue


PRODUCT_DELETE = "product-delete"
_DELETE_SNAPSHOT_FIELDS = ("categoryId", "ownerId", "ownerIds", "familyId")


def _delete_params(product: dict[str, Any]) -> dict[str, Any]:
    """Fields needed to finish and re-authorize a product delete."""
    return {
        field: product[field]
        for field in _DELETE_SNAPSHOT_FIELDS
        if product.get(field) is not None
    }


def _product_not_found(product_id: str) -> NotFoundError:
    return NotFoundError(
        f"Product {product_id} not found",
        resource_type="product",
        resource_id=product_id,
    )
