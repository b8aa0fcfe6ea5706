"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore protocol that all backends must
implement, along with the condition and update types shared by them.

Conditions and updates are small declarative trees. The in-memory backend
evaluates them directly; the DynamoDB backend renders them into condition
and update expressions. Keeping them declarative lets every write that
depends on ownership or counters be a single conditional update.

Invariants:
    - Every record is addressed by (logical table, id)
    - A failed condition raises ConditionFailedError and writes nothing
    - update() returns the full item after the write
    - scan() is a full-collection scan; there is no secondary index

How to change safely:
    - Protocol changes require updating all implementations
    - New condition/update kinds must be supported by both backends
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


# Logical table name -> key attribute
KEY_ATTRIBUTES: dict[str, str] = {
    "users": "userId",
    "categories": "categoryId",
    "products": "productId",
    "customers": "customerId",
    "orders": "orderId",
    "cascades": "operationId",
}


def key_attribute(table: str) -> str:
    """Return the key attribute name for a logical table.

    Raises:
        UnknownTableError: If the table is not part of the schema
    """
    try:
        return KEY_ATTRIBUTES[table]
    except KeyError:
        raise UnknownTableError(f"Unknown table: {table}") from None


class StoreError(Exception):
    """Base exception for document store operations."""

    pass


class UnknownTableError(StoreError):
    """Table is not part of the schema."""

    pass


class ConditionFailedError(StoreError):
    """A conditional write was rejected; nothing was written."""

    def __init__(self, table: str, item_id: str, message: str | None = None) -> None:
        self.table = table
        self.item_id = item_id
        super().__init__(message or f"Condition check failed on {table}/{item_id}")


class StoreUnavailableError(StoreError):
    """Transient backend failure (throttling, connection loss). Retryable."""

    pass


# =============================================================================
# Conditions
# =============================================================================


class Condition:
    """Predicate over a single stored item."""

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Exists(Condition):
    """Attribute is present on the item."""

    field: str

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return item is not None and self.field in item


@dataclass(frozen=True)
class NotExists(Condition):
    """Attribute is absent (or the item doesn't exist)."""

    field: str

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return item is None or self.field not in item


@dataclass(frozen=True)
class Equals(Condition):
    field: str
    value: Any

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return item is not None and self.field in item and item[self.field] == self.value


@dataclass(frozen=True)
class NotEquals(Condition):
    """Attribute differs from value. A missing attribute counts as different."""

    field: str
    value: Any

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return item is None or item.get(self.field) != self.value


@dataclass(frozen=True)
class GreaterThan(Condition):
    field: str
    value: int | float

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        if item is None:
            return False
        current = item.get(self.field)
        return isinstance(current, (int, float)) and current > self.value


@dataclass(frozen=True)
class Contains(Condition):
    """Set/list attribute contains value, or string attribute contains substring."""

    field: str
    value: Any

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        if item is None:
            return False
        current = item.get(self.field)
        if isinstance(current, (set, frozenset, list, tuple)):
            return self.value in current
        if isinstance(current, str) and isinstance(self.value, str):
            return self.value in current
        return False


@dataclass(frozen=True)
class And(Condition):
    conditions: tuple[Condition, ...]

    def __init__(self, *conditions: Condition) -> None:
        object.__setattr__(self, "conditions", tuple(conditions))

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return all(c.evaluate(item) for c in self.conditions)


@dataclass(frozen=True)
class Or(Condition):
    conditions: tuple[Condition, ...]

    def __init__(self, *conditions: Condition) -> None:
        object.__setattr__(self, "conditions", tuple(conditions))

    def evaluate(self, item: dict[str, Any] | None) -> bool:
        return any(c.evaluate(item) for c in self.conditions)


# =============================================================================
# Updates
# =============================================================================


@dataclass
class Update:
    """Field-level update applied atomically to one item.

    Attributes:
        set_fields: Attributes to overwrite
        remove_fields: Attributes to delete
        increments: Numeric attributes to add to (missing counts as 0)
        set_add: String-set attributes to union with
        set_remove: String-set attributes to subtract from
        list_append: List attributes to append to (missing counts as [])

    Example:
        >>> Update(set_fields={"categoryName": "Fruit"}, increments={"productCount": 1})
    """

    set_fields: dict[str, Any] = field(default_factory=dict)
    remove_fields: list[str] = field(default_factory=list)
    increments: dict[str, int | float] = field(default_factory=dict)
    set_add: dict[str, set[str]] = field(default_factory=dict)
    set_remove: dict[str, set[str]] = field(default_factory=dict)
    list_append: dict[str, list[Any]] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.set_fields
            or self.remove_fields
            or self.increments
            or self.set_add
            or self.set_remove
            or self.list_append
        )


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for document store backends.

    Durability contract:
        - Every write method returns only after the backend acknowledged it
        - Conditional writes are atomic per item; there are no multi-item
          transactions

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.put("categories", {"categoryId": "c1", "productCount": 0})
        >>> await store.update(
        ...     "categories", "c1", Update(increments={"productCount": 1})
        ... )
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open backend connections. Must be called before any other operation."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend connections."""
        ...

    @abstractmethod
    async def get(self, table: str, item_id: str) -> dict[str, Any] | None:
        """Fetch one item by id, or None if it doesn't exist."""
        ...

    @abstractmethod
    async def put(
        self,
        table: str,
        item: dict[str, Any],
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        """Write a whole item.

        Raises:
            ConditionFailedError: If the condition doesn't hold
        """
        ...

    @abstractmethod
    async def update(
        self,
        table: str,
        item_id: str,
        update: Update,
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        """Apply a field-level update and return the item after the write.

        Without a condition, updating a missing item creates it (upsert).

        Raises:
            ConditionFailedError: If the condition doesn't hold
        """
        ...

    @abstractmethod
    async def delete(
        self,
        table: str,
        item_id: str,
        condition: Condition | None = None,
    ) -> dict[str, Any] | None:
        """Delete an item and return it, or None if it didn't exist.

        Raises:
            ConditionFailedError: If the condition doesn't hold
        """
        ...

    @abstractmethod
    async def scan(
        self,
        table: str,
        filter: Condition | None = None,
    ) -> list[dict[str, Any]]:
        """Return every item of the table matching the filter.

        This is an O(n) full scan.
        """
        ...
