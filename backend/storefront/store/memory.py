"""
In-memory document store implementation.

This module provides a simple in-memory backend for:
- Unit tests
- Integration tests
- Local development without DynamoDB

Invariants:
    - All data is lost on process exit
    - Provides the same per-item conditional semantics as DynamoDB
    - Items are copied on the way in and out; callers never share state
      with the store

How to change safely:
    - Keep interface compatible with the DocumentStore protocol
    - Mirror DynamoDB semantics (ADD on missing attribute, upsert on update)
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from typing import Any

from .base import (
    Condition,
    ConditionFailedError,
    StoreError,
    Update,
    key_attribute,
)

logger = logging.getLogger(__name__)


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore.

    Thread safety:
        Uses an asyncio lock so each write is atomic with respect to other
        coroutines, matching the per-item atomicity of DynamoDB.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.connect()
        >>> await store.put("users", {"userId": "u1", "name": "Ada"})
        >>> (await store.get("users", "u1"))["name"]
        'Ada'
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDocumentStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._tables.clear()
        logger.debug("InMemoryDocumentStore closed")

    async def get(self, table: str, item_id: str) -> dict[str, Any] | None:
        key_attribute(table)
        item = self._tables[table].get(item_id)
        return copy.deepcopy(item) if item is not None else None

    async def put(
        self,
        table: str,
        item: dict[str, Any],
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        key = key_attribute(table)
        item_id = item.get(key)
        if not item_id:
            raise StoreError(f"Item for {table} is missing key attribute {key}")

        async with self._lock:
            existing = self._tables[table].get(item_id)
            self._check(table, item_id, existing, condition)
            self._tables[table][item_id] = copy.deepcopy(item)

        return copy.deepcopy(item)

    async def update(
        self,
        table: str,
        item_id: str,
        update: Update,
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        key = key_attribute(table)

        async with self._lock:
            existing = self._tables[table].get(item_id)
            self._check(table, item_id, existing, condition)

            item = copy.deepcopy(existing) if existing is not None else {key: item_id}
            self._apply(item, update)
            self._tables[table][item_id] = item

            return copy.deepcopy(item)

    async def delete(
        self,
        table: str,
        item_id: str,
        condition: Condition | None = None,
    ) -> dict[str, Any] | None:
        key_attribute(table)

        async with self._lock:
            existing = self._tables[table].get(item_id)
            self._check(table, item_id, existing, condition)
            if existing is None:
                return None
            del self._tables[table][item_id]
            return existing

    async def scan(
        self,
        table: str,
        filter: Condition | None = None,
    ) -> list[dict[str, Any]]:
        key_attribute(table)
        items = list(self._tables[table].values())
        return [
            copy.deepcopy(item)
            for item in items
            if filter is None or filter.evaluate(item)
        ]

    def _check(
        self,
        table: str,
        item_id: str,
        existing: dict[str, Any] | None,
        condition: Condition | None,
    ) -> None:
        if condition is not None and not condition.evaluate(existing):
            raise ConditionFailedError(table, item_id)

    def _apply(self, item: dict[str, Any], update: Update) -> None:
        """Apply an update in place, following DynamoDB semantics."""
        for name, value in update.set_fields.items():
            item[name] = copy.deepcopy(value)

        for name in update.remove_fields:
            item.pop(name, None)

        for name, delta in update.increments.items():
            item[name] = item.get(name, 0) + delta

        for name, values in update.set_add.items():
            current = item.get(name)
            merged = set(current) if current else set()
            merged.update(values)
            item[name] = merged

        for name, values in update.set_remove.items():
            current = item.get(name)
            if not current:
                continue
            remaining = set(current) - set(values)
            # DynamoDB drops attributes whose set becomes empty
            if remaining:
                item[name] = remaining
            else:
                item.pop(name, None)

        for name, values in update.list_append.items():
            item[name] = list(item.get(name) or []) + copy.deepcopy(values)

    # Testing helpers

    def table_size(self, table: str) -> int:
        """Number of items in a table (testing helper)."""
        return len(self._tables[table])

    def clear_table(self, table: str) -> None:
        """Remove all items of a table (testing helper)."""
        self._tables[table].clear()
