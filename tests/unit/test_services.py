"""
Unit tests for the request-level services, wired through the Storefront
container on fakes.

Tests cover:
- User creation, duplicate email, update and deletion side effects
- Product create/update/delete across Stripe, S3 and the store, including
  cleanup when a later write fails
- Customer status, order status history and refunds
- Payment introspection views
"""

import base64

import pytest

from backend.storefront.errors import (
    ConflictError,
    InvalidCategoryError,
    InvalidInputError,
    NotFoundError,
    PartialFailureError,
    UpstreamFailureError,
)
from backend.storefront.services.products import decode_image, to_minor_units
from backend.storefront.store.base import StoreUnavailableError
from tests.conftest import make_principal

ADMIN = make_principal("admin")
IMAGE = base64.b64encode(b"\x89PNG fake image").decode()


async def started(storefront):
    await storefront.start()
    await storefront.store.put(
        "users", {"userId": "admin", "ownerId": "admin", "ownerIds": {"admin"}, "name": "Ada"}
    )
    return storefront


class TestHelpers:
    def test_minor_units(self):
        assert to_minor_units(1.5) == 150
        assert to_minor_units(19.99) == 1999

    def test_decode_data_url(self):
        assert decode_image("data:image/png;base64," + IMAGE) == b"\x89PNG fake image"

    def test_decode_invalid(self):
        with pytest.raises(InvalidInputError):
            decode_image("not base64!!")


class TestUserService:
    """Tests for UserService."""

    @pytest.mark.asyncio
    async def test_create_user(self, storefront):
        sf = await started(storefront)

        user, report = await sf.users.create_user(
            ADMIN,
            {
                "name": "Bob",
                "role": "Editor",
                "permissions": ["Product:Read", "Products:Update"],
                "email": "bob@shop.test",
                "phoneNumber": "+100",
            },
        )

        assert report.complete
        assert user["ownerIds"] == {"admin"}
        assert user["familyId"] == "admin"
        assert user["permissions"] == ["Products:Read", "Products:Update"]
        assert user["status"] == "FORCE_CHANGE_PASSWORD"
        account = sf.identity.users["bob@shop.test"]
        assert account["sub"] == user["userId"]
        assert account["attributes"]["custom:permissions"] == "Products:Read,Products:Update"
        assert account["attributes"]["custom:familyId"] == "admin"

    @pytest.mark.asyncio
    async def test_duplicate_email(self, storefront):
        sf = await started(storefront)
        fields = {"name": "Bob", "role": "r", "permissions": [], "email": "bob@shop.test", "phoneNumber": "1"}
        await sf.users.create_user(ADMIN, fields)

        with pytest.raises(ConflictError) as exc_info:
            await sf.users.create_user(ADMIN, fields)
        assert exc_info.value.reason == "DUPLICATE_EMAIL"

    @pytest.mark.asyncio
    async def test_status_lookup_failure_defaults_to_pending(self, storefront):
        sf = await started(storefront)
        sf.identity.fail_status = True

        user, _ = await sf.users.create_user(
            ADMIN, {"name": "Bob", "role": "r", "permissions": [], "email": "b@x.test", "phoneNumber": "1"}
        )
        assert user["status"] == "pending"

    @pytest.mark.asyncio
    async def test_list_excludes_self(self, storefront):
        sf = await started(storefront)
        await sf.users.create_user(
            ADMIN, {"name": "Bob", "role": "r", "permissions": [], "email": "b@x.test", "phoneNumber": "1"}
        )

        users = await sf.users.list_users(ADMIN)

        assert [u["name"] for u in users] == ["Bob"]

    @pytest.mark.asyncio
    async def test_update_user(self, storefront):
        sf = await started(storefront)
        user, _ = await sf.users.create_user(
            ADMIN, {"name": "Bob", "role": "r", "permissions": [], "email": "b@x.test", "phoneNumber": "1"}
        )

        updated = await sf.users.update_user(ADMIN, user["userId"], {"role": "Manager", "name": None})

        assert updated["role"] == "Manager"
        assert updated["name"] == "Bob"
        assert sf.identity.users["b@x.test"]["attributes"]["custom:role"] == "Manager"

    @pytest.mark.asyncio
    async def test_delete_user_clears_sessions(self, storefront):
        sf = await started(storefront)
        user, _ = await sf.users.create_user(
            ADMIN, {"name": "Bob", "role": "r", "permissions": [], "email": "b@x.test", "phoneNumber": "1"}
        )
        await sf.store.put("users", {**user, "connectionId": "conn-1"})

        await sf.users.delete_user(ADMIN, user["userId"])

        assert sf.notifier.pushed == [("conn-1", {"action": "clearLocalStorage"})]
        assert await sf.store.get("users", user["userId"]) is None
        assert "b@x.test" not in sf.identity.users

    @pytest.mark.asyncio
    async def test_delete_user_partial_keeps_user(self, storefront):
        """If sharing cannot be revoked the user and identity survive for a retry."""
        sf = await started(storefront)
        user, _ = await sf.users.create_user(
            ADMIN, {"name": "Bob", "role": "r", "permissions": [], "email": "b@x.test", "phoneNumber": "1"}
        )
        await sf.store.put("products", {"productId": "p1", "ownerId": "admin", "ownerIds": {"admin", user["userId"]}})
        sf.store.fail_updates("products", "p1")

        with pytest.raises(PartialFailureError):
            await sf.users.delete_user(ADMIN, user["userId"])

        assert await sf.store.get("users", user["userId"]) is not None
        assert "b@x.test" in sf.identity.users


class TestProductService:
    """Tests for ProductService."""

    async def make_category(self, sf):
        return await sf.categories.create_category(ADMIN, "Fruits")

    @pytest.mark.asyncio
    async def test_create_product(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)

        product = await sf.products.create_product(
            ADMIN,
            {
                "name": "Apple",
                "price": 1.5,
                "description": "Crisp",
                "categoryId": category["categoryId"],
                "imageBase64": IMAGE,
                "imageMimeType": "image/png",
                "stock": 10,
            },
        )

        assert product["imageUrl"] in sf.images.objects
        assert sf.images.objects[product["imageUrl"]][1] == "image/png"
        stripe_product = sf.payments.products[product["stripeProductId"]]
        assert stripe_product["images"] == [product["imageUrl"]]
        assert sf.payments.prices[product["stripePriceId"]]["unit_amount"] == 150
        sku = sf.payments.skus[product["stripeSkuId"]]
        assert sku["inventory"] == {"type": "finite", "quantity": 10}
        assert (await sf.store.get("categories", category["categoryId"]))["productCount"] == 1

    @pytest.mark.asyncio
    async def test_create_with_bad_category_cleans_up(self, storefront):
        """External writes are undone when the product cannot be stored."""
        sf = await started(storefront)

        with pytest.raises(InvalidCategoryError):
            await sf.products.create_product(
                ADMIN, {"name": "Apple", "price": 1, "categoryId": "ghost", "imageBase64": IMAGE}
            )
        assert sf.images.objects == {}
        assert sf.payments.products == {}

    @pytest.mark.asyncio
    async def test_stripe_failure_removes_image(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        sf.payments.fail_on.add("create_price")

        with pytest.raises(UpstreamFailureError):
            await sf.products.create_product(
                ADMIN,
                {"name": "Apple", "price": 1, "categoryId": category["categoryId"], "imageBase64": IMAGE},
            )

        assert sf.images.objects == {}
        assert all(not p["active"] for p in sf.payments.products.values())
        assert sf.store.table_size("products") == 0

    @pytest.mark.asyncio
    async def test_update_price_creates_new_price(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN, {"name": "Apple", "price": 1.5, "categoryId": category["categoryId"], "stock": 3}
        )

        updated = await sf.products.update_product(
            ADMIN, product["productId"], {"price": 2.0, "stock": 5, "additionalOwnerIds": ["bob"]}
        )

        assert updated["stripePriceId"] != product["stripePriceId"]
        assert sf.payments.prices[updated["stripePriceId"]]["unit_amount"] == 200
        assert sf.payments.skus[product["stripeSkuId"]]["inventory"]["quantity"] == 5
        assert updated["ownerIds"] == {"admin", "bob"}

    @pytest.mark.asyncio
    async def test_update_replaces_image(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN, {"name": "Apple", "price": 1, "categoryId": category["categoryId"], "imageBase64": IMAGE}
        )

        updated = await sf.products.update_product(ADMIN, product["productId"], {"imageBase64": IMAGE})

        assert product["imageUrl"] not in sf.images.objects
        assert updated["imageUrl"] in sf.images.objects

    @pytest.mark.asyncio
    async def test_uncounted_product_discards_external_writes(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        sf.store.fail_updates("categories", category["categoryId"])

        with pytest.raises(StoreUnavailableError):
            await sf.products.create_product(
                ADMIN,
                {"name": "Apple", "price": 1, "categoryId": category["categoryId"], "imageBase64": IMAGE},
            )

        assert sf.images.objects == {}
        assert all(not p["active"] for p in sf.payments.products.values())
        assert sf.store.table_size("products") == 0

    @pytest.mark.asyncio
    async def test_failed_update_keeps_old_image(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN, {"name": "Apple", "price": 1, "categoryId": category["categoryId"], "imageBase64": IMAGE}
        )
        sf.store.fail_updates("products", product["productId"])

        with pytest.raises(StoreUnavailableError):
            await sf.products.update_product(ADMIN, product["productId"], {"imageBase64": IMAGE})

        assert list(sf.images.objects) == [product["imageUrl"]]
        assert (await sf.store.get("products", product["productId"]))["imageUrl"] == product["imageUrl"]

    @pytest.mark.asyncio
    async def test_delete_product(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN,
            {"name": "Apple", "price": 1, "categoryId": category["categoryId"], "imageBase64": IMAGE, "stock": 1},
        )

        await sf.products.delete_product(ADMIN, product["productId"])

        assert sf.payments.products == {}
        assert sf.payments.skus == {}
        assert sf.images.objects == {}
        assert (await sf.store.get("categories", category["categoryId"]))["productCount"] == 0

    @pytest.mark.asyncio
    async def test_delete_tolerates_missing_stripe_product(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN, {"name": "Apple", "price": 1, "categoryId": category["categoryId"]}
        )
        sf.payments.products.clear()

        await sf.products.delete_product(ADMIN, product["productId"])

        assert await sf.store.get("products", product["productId"]) is None

    @pytest.mark.asyncio
    async def test_repeat_delete_finishes_count_update(self, storefront):
        sf = await started(storefront)
        category = await self.make_category(sf)
        product = await sf.products.create_product(
            ADMIN, {"name": "Apple", "price": 1, "categoryId": category["categoryId"]}
        )
        sf.store.fail_updates("categories", category["categoryId"])

        with pytest.raises(PartialFailureError):
            await sf.products.delete_product(ADMIN, product["productId"])
        assert (await sf.store.get("categories", category["categoryId"]))["productCount"] == 1

        sf.store.heal()
        await sf.products.delete_product(ADMIN, product["productId"])

        assert (await sf.store.get("categories", category["categoryId"]))["productCount"] == 0
        with pytest.raises(NotFoundError):
            await sf.products.delete_product(ADMIN, product["productId"])


class TestCustomerService:
    """Tests for CustomerService."""

    async def seed(self, sf):
        await sf.customer_identity.create_user("cust@x.test", {"email": "cust@x.test"})
        await sf.store.put(
            "customers",
            {
                "customerId": "cu1",
                "email": "cust@x.test",
                "customerStripeId": "cus_1",
                "status": "active",
            },
        )
        sf.payments.charges["cus_1"] = [{"id": "ch_1", "amount": 500}]

    @pytest.mark.asyncio
    async def test_get_includes_charges(self, storefront):
        sf = await started(storefront)
        await self.seed(sf)

        customer = await sf.customers.get_customer("cu1")

        assert customer["charges"] == [{"id": "ch_1", "amount": 500}]

    @pytest.mark.asyncio
    async def test_deactivate_disables_login(self, storefront):
        sf = await started(storefront)
        await self.seed(sf)

        customer = await sf.customers.update_status("cu1", "inactive")

        assert customer["status"] == "inactive"
        assert sf.customer_identity.users["cust@x.test"]["enabled"] is False

    @pytest.mark.asyncio
    async def test_update_missing(self, storefront):
        sf = await started(storefront)
        with pytest.raises(NotFoundError):
            await sf.customers.update_status("ghost", "active")
        assert await sf.store.get("customers", "ghost") is None

    @pytest.mark.asyncio
    async def test_delete_customer(self, storefront):
        sf = await started(storefront)
        await self.seed(sf)

        await sf.customers.delete_customer("cu1")

        assert await sf.store.get("customers", "cu1") is None
        assert "cust@x.test" not in sf.customer_identity.users
        assert sf.payments.deleted_customers == ["cus_1"]

    @pytest.mark.asyncio
    async def test_delete_customer_keeps_record_until_upstream_done(self, storefront):
        sf = await started(storefront)
        await self.seed(sf)
        sf.payments.fail_on.add("delete_customer")

        with pytest.raises(UpstreamFailureError):
            await sf.customers.delete_customer("cu1")
        assert await sf.store.get("customers", "cu1") is not None

        sf.payments.fail_on.clear()
        await sf.customers.delete_customer("cu1")

        assert await sf.store.get("customers", "cu1") is None
        assert sf.payments.deleted_customers == ["cus_1"]


class TestOrderService:
    """Tests for OrderService."""

    @pytest.mark.asyncio
    async def test_status_history_appends(self, storefront):
        sf = await started(storefront)
        await sf.store.put("orders", {"orderId": "o1", "currentStatus": "Paid"})

        await sf.orders.update_status("o1", "Shipped")
        order = await sf.orders.update_status("o1", "Delivered")

        assert order["currentStatus"] == "Delivered"
        assert [h["status"] for h in order["statusHistory"]] == ["Shipped", "Delivered"]

    @pytest.mark.asyncio
    async def test_update_missing_order(self, storefront):
        sf = await started(storefront)
        with pytest.raises(NotFoundError):
            await sf.orders.update_status("ghost", "Shipped")

    @pytest.mark.asyncio
    async def test_refund_uses_charge_id(self, storefront):
        sf = await started(storefront)
        await sf.store.put("orders", {"orderId": "o1", "chargeId": "ch_9"})

        result = await sf.orders.refund_order("o1")

        assert result["refund"]["charge"] == "ch_9"
        assert result["order"]["currentStatus"] == "Item returned"

    @pytest.mark.asyncio
    async def test_refund_legacy_order_id(self, storefront):
        """Older orders used the charge id as order id."""
        sf = await started(storefront)
        await sf.store.put("orders", {"orderId": "ch_legacy"})

        result = await sf.orders.refund_order("ch_legacy")

        assert result["refund"]["charge"] == "ch_legacy"

    @pytest.mark.asyncio
    async def test_delete_order(self, storefront):
        sf = await started(storefront)
        await sf.store.put("orders", {"orderId": "o1"})

        await sf.orders.delete_order("o1")

        with pytest.raises(NotFoundError):
            await sf.orders.delete_order("o1")


class TestPaymentIntrospection:
    @pytest.mark.asyncio
    async def test_customer_balance_transactions(self, storefront):
        sf = await started(storefront)
        sf.payments.charges["cus_1"] = [
            {"id": "ch_1", "balance_transaction": "txn_1", "description": "Apples"},
            {"id": "ch_2", "balance_transaction": None},
        ]
        sf.payments.balance_transactions["txn_1"] = {
            "id": "txn_1",
            "amount": 500,
            "fee": 45,
            "net": 455,
            "currency": "usd",
        }

        rows = await sf.payment_views.customer_balance_transactions("cus_1")

        assert rows == [
            {
                "chargeId": "ch_1",
                "balanceTransactionId": "txn_1",
                "amount": 500,
                "fee": 45,
                "net": 455,
                "currency": "usd",
                "description": "Apples",
            }
        ]
