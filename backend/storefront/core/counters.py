"""
Idempotent maintenance of category product counters.

Invariants:
    - productCount is only changed by single conditional updates, never by
      read-modify-write
    - Increment requires the category to exist
    - Decrement never takes the counter below zero; a decrement against an
      already-zero counter is a no-op
"""

from __future__ import annotations

import logging
from enum import Enum

from ..errors import NotFoundError
from ..store.base import And, ConditionFailedError, DocumentStore, Exists, GreaterThan, Update
from .retry import with_retries

logger = logging.getLogger(__name__)

COUNT_FIELD = "productCount"


class CounterResult(Enum):
    APPLIED = "applied"
    NOOP = "noop"


class ProductCountMaintainer:
    """Keeps Category.productCount in step with live products."""

    def __init__(
        self,
        store: DocumentStore,
        max_retries: int = 3,
        retry_delay_ms: int = 100,
    ) -> None:
        self.store = store
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms

    async def increment(self, category_id: str) -> int:
        """Add one to the counter and return the new value.

        Raises:
            NotFoundError: If the category doesn't exist
        """

        async def attempt():
            return await self.store.update(
                "categories",
                category_id,
                Update(increments={COUNT_FIELD: 1}),
                condition=Exists("categoryId"),
            )

        try:
            item = await with_retries(
                attempt,
                max_retries=self.max_retries,
                retry_delay_ms=self.retry_delay_ms,
                description="productCount increment",
            )
        except ConditionFailedError:
            raise NotFoundError(
                f"Category {category_id} not found",
                resource_type="category",
                resource_id=category_id,
            ) from None
        return int(item.get(COUNT_FIELD, 0))

    async def decrement(self, category_id: str) -> CounterResult:
        """Subtract one from the counter unless it is already zero."""

        async def attempt():
            return await self.store.update(
                "categories",
                category_id,
                Update(increments={COUNT_FIELD: -1}),
                condition=And(Exists("categoryId"), GreaterThan(COUNT_FIELD, 0)),
            )

        try:
            await with_retries(
                attempt,
                max_retries=self.max_retries,
                retry_delay_ms=self.retry_delay_ms,
                description="productCount decrement",
            )
        except ConditionFailedError:
            logger.info(
                "productCount decrement skipped",
                extra={"category_id": category_id, "reason": "zero or missing"},
            )
            return CounterResult.NOOP
        return CounterResult.APPLIED
