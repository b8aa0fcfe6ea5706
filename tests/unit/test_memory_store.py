"""
Unit tests for the in-memory document store.

Tests cover:
- Basic put/get/delete/scan operations
- Conditional writes
- Update semantics (upsert, ADD, set add/remove, list append)
- Isolation between callers and the store
"""

import pytest

from backend.storefront.store.base import (
    And,
    ConditionFailedError,
    Contains,
    Equals,
    Exists,
    GreaterThan,
    NotEquals,
    NotExists,
    Or,
    StoreError,
    UnknownTableError,
    Update,
)
from backend.storefront.store.memory import InMemoryDocumentStore


class TestInMemoryDocumentStore:
    """Tests for InMemoryDocumentStore."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore()

    @pytest.mark.asyncio
    async def test_connect_close(self, store):
        """Close drops all data."""
        await store.connect()
        assert store.is_connected
        await store.put("users", {"userId": "u1"})

        await store.close()
        assert not store.is_connected
        assert store.table_size("users") == 0

    @pytest.mark.asyncio
    async def test_put_get(self, store):
        await store.put("products", {"productId": "p1", "name": "Apple"})
        assert await store.get("products", "p1") == {"productId": "p1", "name": "Apple"}
        assert await store.get("products", "missing") is None

    @pytest.mark.asyncio
    async def test_unknown_table(self, store):
        with pytest.raises(UnknownTableError):
            await store.get("widgets", "w1")

    @pytest.mark.asyncio
    async def test_put_requires_key(self, store):
        with pytest.raises(StoreError):
            await store.put("products", {"name": "no id"})

    @pytest.mark.asyncio
    async def test_put_if_not_exists(self, store):
        await store.put("products", {"productId": "p1"}, condition=NotExists("productId"))
        with pytest.raises(ConditionFailedError) as exc_info:
            await store.put("products", {"productId": "p1"}, condition=NotExists("productId"))
        assert exc_info.value.table == "products"
        assert exc_info.value.item_id == "p1"

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, store):
        """Mutating a returned item never changes the stored one."""
        await store.put("products", {"productId": "p1", "ownerIds": {"a"}})
        item = await store.get("products", "p1")
        item["ownerIds"].add("intruder")

        assert (await store.get("products", "p1"))["ownerIds"] == {"a"}

    @pytest.mark.asyncio
    async def test_update_upserts_without_condition(self, store):
        item = await store.update("categories", "c1", Update(increments={"productCount": 1}))
        assert item == {"categoryId": "c1", "productCount": 1}

    @pytest.mark.asyncio
    async def test_update_condition_on_missing_item(self, store):
        with pytest.raises(ConditionFailedError):
            await store.update(
                "categories",
                "c1",
                Update(increments={"productCount": 1}),
                condition=Exists("categoryId"),
            )
        assert await store.get("categories", "c1") is None

    @pytest.mark.asyncio
    async def test_update_set_and_remove(self, store):
        await store.put("products", {"productId": "p1", "name": "Apple", "stale": True})
        item = await store.update(
            "products",
            "p1",
            Update(set_fields={"name": "Pear"}, remove_fields=["stale"]),
        )
        assert item == {"productId": "p1", "name": "Pear"}

    @pytest.mark.asyncio
    async def test_set_add_and_remove(self, store):
        await store.put("products", {"productId": "p1"})
        await store.update("products", "p1", Update(set_add={"ownerIds": {"a", "b"}}))
        item = await store.update("products", "p1", Update(set_remove={"ownerIds": {"a"}}))
        assert item["ownerIds"] == {"b"}

    @pytest.mark.asyncio
    async def test_set_remove_drops_empty_set(self, store):
        """A set emptied by DELETE disappears, as in DynamoDB."""
        await store.put("products", {"productId": "p1", "ownerIds": {"a"}})
        item = await store.update("products", "p1", Update(set_remove={"ownerIds": {"a"}}))
        assert "ownerIds" not in item

    @pytest.mark.asyncio
    async def test_list_append(self, store):
        await store.put("orders", {"orderId": "o1"})
        await store.update("orders", "o1", Update(list_append={"statusHistory": [{"status": "Paid"}]}))
        item = await store.update(
            "orders", "o1", Update(list_append={"statusHistory": [{"status": "Shipped"}]})
        )
        assert [h["status"] for h in item["statusHistory"]] == ["Paid", "Shipped"]

    @pytest.mark.asyncio
    async def test_delete_returns_old_item(self, store):
        await store.put("orders", {"orderId": "o1", "total": 5})
        assert await store.delete("orders", "o1") == {"orderId": "o1", "total": 5}
        assert await store.delete("orders", "o1") is None

    @pytest.mark.asyncio
    async def test_conditional_delete(self, store):
        await store.put("categories", {"categoryId": "c1", "productCount": 2})
        with pytest.raises(ConditionFailedError):
            await store.delete(
                "categories",
                "c1",
                condition=Or(NotExists("productCount"), Equals("productCount", 0)),
            )
        assert await store.get("categories", "c1") is not None

    @pytest.mark.asyncio
    async def test_scan_with_filter(self, store):
        await store.put("products", {"productId": "p1", "ownerIds": {"a"}, "categoryId": "c1"})
        await store.put("products", {"productId": "p2", "ownerIds": {"b"}, "categoryId": "c1"})
        await store.put("products", {"productId": "p3", "ownerId": "a", "categoryId": "c2"})

        owned = await store.scan("products", filter=Or(Contains("ownerIds", "a"), Equals("ownerId", "a")))
        assert {p["productId"] for p in owned} == {"p1", "p3"}

        in_c1 = await store.scan("products", filter=Equals("categoryId", "c1"))
        assert {p["productId"] for p in in_c1} == {"p1", "p2"}
        assert len(await store.scan("products")) == 3


class TestConditions:
    """Tests for condition evaluation."""

    def test_not_equals_missing_attribute(self):
        """A missing attribute counts as different."""
        assert NotEquals("ownerId", "a").evaluate({"productId": "p1"})
        assert not NotEquals("ownerId", "a").evaluate({"ownerId": "a"})

    def test_greater_than_ignores_non_numbers(self):
        assert GreaterThan("productCount", 0).evaluate({"productCount": 1})
        assert not GreaterThan("productCount", 0).evaluate({"productCount": "1"})
        assert not GreaterThan("productCount", 0).evaluate(None)

    def test_contains_string(self):
        assert Contains("name", "ppl").evaluate({"name": "Apple"})

    def test_and_or(self):
        item = {"a": 1}
        assert And(Exists("a"), NotExists("b")).evaluate(item)
        assert not And(Exists("a"), Exists("b")).evaluate(item)
        assert Or(Exists("b"), Equals("a", 1)).evaluate(item)

    def test_update_is_empty(self):
        assert Update().is_empty()
        assert not Update(set_add={"ownerIds": {"a"}}).is_empty()
