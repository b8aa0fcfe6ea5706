"""
Integration tests for multi-step back office flows on a started Storefront.

Tests cover:
- Category/product lifecycle with product counts and rename cascade
- Inviting a collaborator, sharing records, and revoking on deletion
"""

import pytest
import pytest_asyncio

from backend.storefront.errors import ConflictError, NotFoundError
from tests.conftest import make_principal

ALICE = make_principal("alice")


class TestCatalogLifecycle:
    """Fruits/Apple walk-through of category and product integrity."""

    @pytest_asyncio.fixture
    async def sf(self, storefront):
        await storefront.start()
        await storefront.store.put(
            "users", {"userId": "alice", "ownerId": "alice", "ownerIds": {"alice"}, "name": "Alice"}
        )
        yield storefront
        await storefront.stop()

    @pytest.mark.asyncio
    async def test_lifecycle(self, sf):
        fruits = await sf.categories.create_category(ALICE, "Fruits")
        category_id = fruits["categoryId"]
        assert fruits["productCount"] == 0
        assert fruits["ownerName"] == "Alice"

        apple = await sf.products.create_product(
            ALICE, {"name": "Apple", "price": 1.25, "categoryId": category_id}
        )
        assert apple["categoryName"] == "Fruits"
        assert (await sf.categories.get_category(ALICE, category_id))["productCount"] == 1

        _, report = await sf.categories.rename_category(ALICE, category_id, "Fresh Fruits")
        assert report.complete
        assert (await sf.products.get_product(ALICE, apple["productId"]))["categoryName"] == "Fresh Fruits"

        with pytest.raises(ConflictError):
            await sf.categories.delete_category(ALICE, category_id)

        await sf.products.delete_product(ALICE, apple["productId"])
        assert (await sf.categories.get_category(ALICE, category_id))["productCount"] == 0

        await sf.categories.delete_category(ALICE, category_id)
        with pytest.raises(NotFoundError):
            await sf.categories.get_category(ALICE, category_id)
        assert sf.payments.products == {}


class TestCollaboratorSharing:
    """Alice invites Bob, Bob sees Alice's products, Bob is removed."""

    @pytest_asyncio.fixture
    async def sf(self, storefront):
        await storefront.start()
        await storefront.store.put(
            "users", {"userId": "alice", "ownerId": "alice", "ownerIds": {"alice"}, "name": "Alice"}
        )
        yield storefront
        await storefront.stop()

    @pytest.mark.asyncio
    async def test_invite_and_revoke(self, sf):
        fruits = await sf.categories.create_category(ALICE, "Fruits")
        apple = await sf.products.create_product(
            ALICE, {"name": "Apple", "price": 1, "categoryId": fruits["categoryId"]}
        )

        bob_record, report = await sf.users.create_user(
            ALICE,
            {
                "name": "Bob",
                "role": "Viewer",
                "permissions": ["Products:Read"],
                "email": "bob@shop.test",
                "phoneNumber": "+100",
            },
        )
        assert report.complete
        bob = make_principal(bob_record["userId"], scopes=["Products:Read"])

        seen = await sf.products.get_product(bob, apple["productId"])
        assert seen["name"] == "Apple"
        # Categories:Read was not granted, so the category is not shared
        with pytest.raises(NotFoundError):
            await sf.categories.get_category(bob, fruits["categoryId"])

        await sf.users.delete_user(ALICE, bob_record["userId"])

        with pytest.raises(NotFoundError):
            await sf.products.get_product(bob, apple["productId"])
        assert (await sf.products.get_product(ALICE, apple["productId"]))["ownerIds"] == {"alice"}

    @pytest.mark.asyncio
    async def test_collaborator_product_shared_back(self, sf):
        """Products Bob creates are visible to Alice who created Bob."""
        fruits = await sf.categories.create_category(ALICE, "Fruits")
        bob_record, _ = await sf.users.create_user(
            ALICE,
            {
                "name": "Bob",
                "role": "Editor",
                "permissions": ["Categories:Read", "Products:Read", "Products:Create"],
                "email": "bob@shop.test",
                "phoneNumber": "+100",
            },
        )
        bob = make_principal(bob_record["userId"], family_id="alice")

        pear = await sf.products.create_product(
            bob, {"name": "Pear", "price": 2, "categoryId": fruits["categoryId"]}
        )

        assert (await sf.products.get_product(ALICE, pear["productId"]))["name"] == "Pear"
        assert (await sf.categories.get_category(ALICE, fruits["categoryId"]))["productCount"] == 1
