"""
Product management.

A product spans three systems: the products table, a Stripe product with a
price, and an image in S3. Creation writes the external parts first and the
record last; deletion removes the external parts first and the record last,
so a failure never leaves a record pointing at missing external state.

Invariants:
    - Prices are sent to Stripe in minor units: round(price * 100)
    - Every price change creates a new Stripe price; prices are immutable
    - Category membership is fixed at creation
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

from ..access.policy import AccessPolicyEvaluator, ResourceKind, membership_condition
from ..access.principal import Action, Principal
from ..clients.base import ObjectStore, PaymentProcessor
from ..core.clock import utc_now
from ..core.integrity import ReferentialIntegrityCoordinator
from ..errors import InvalidInputError, NotFoundError, StorefrontError, UpstreamFailureError
from ..store.base import And, ConditionFailedError, DocumentStore, Exists, StoreError, Update

logger = logging.getLogger(__name__)

TABLE = "products"

DEFAULT_IMAGE_TYPE = "image/jpeg"


def to_minor_units(price: float) -> int:
    """Convert a major-unit price to the processor's minor units."""
    return int(round(price * 100))


def decode_image(image_base64: str) -> bytes:
    """Decode a base64 image payload.

    Raises:
        InvalidInputError: If the payload is not valid base64
    """
    if "," in image_base64 and image_base64.startswith("data:"):
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidInputError("imageBase64 is not valid base64", field_name="imageBase64") from None


class ProductService:
    def __init__(
        self,
        store: DocumentStore,
        policy: AccessPolicyEvaluator,
        integrity: ReferentialIntegrityCoordinator,
        payments: PaymentProcessor,
        images: ObjectStore,
    ) -> None:
        self.store = store
        self.policy = policy
        self.integrity = integrity
        self.payments = payments
        self.images = images

    async def list_products(self, principal: Principal) -> list[dict[str, Any]]:
        products = await self.store.scan(TABLE)
        return self.policy.filter_visible(principal, ResourceKind.PRODUCT, products)

    async def get_product(self, principal: Principal, product_id: str) -> dict[str, Any]:
        product = await self.store.get(TABLE, product_id)
        return self.policy.check_or_raise(
            principal, ResourceKind.PRODUCT, product, Action.READ, product_id
        )

    async def create_product(self, principal: Principal, fields: dict[str, Any]) -> dict[str, Any]:
        """Upload the image, register the product with Stripe, then store it.

        Raises:
            InvalidCategoryError: If the category is missing or not visible
            InvalidInputError: If the image payload is not valid base64
            UpstreamFailureError: If S3 or Stripe rejects the request
        """
        category_id = fields["categoryId"]
        await self.integrity.require_category(principal, category_id)

        image_url = None
        if fields.get("imageBase64"):
            data = decode_image(fields["imageBase64"])
            image_url = await self.images.upload(
                data, fields.get("imageMimeType") or DEFAULT_IMAGE_TYPE
            )

        stripe_product = None
        try:
            stripe_product = await self.payments.create_product(
                fields["name"],
                description=fields.get("description"),
                images=[image_url] if image_url else None,
            )
            stripe_price = await self.payments.create_price(
                stripe_product["id"], to_minor_units(fields["price"])
            )

            record = {
                "name": fields["name"],
                "price": fields["price"],
                "description": fields.get("description"),
                "imageUrl": image_url,
                "imageUrls": [image_url] if image_url else [],
                "stripeProductId": stripe_product["id"],
                "stripePriceId": stripe_price["id"],
                "active": fields.get("active", True),
            }
            if fields.get("stock") is not None:
                sku = await self.payments.create_sku(
                    stripe_product["id"],
                    to_minor_units(fields["price"]),
                    inventory={"type": "finite", "quantity": fields["stock"]},
                )
                record["stock"] = fields["stock"]
                record["stripeSkuId"] = sku["id"]

            return await self.integrity.create_product(principal, category_id, record)
        except (StorefrontError, StoreError):
            await self._discard(image_url, stripe_product)
            raise

    async def update_product(
        self,
        principal: Principal,
        product_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        """Patch a product, replacing its image and price when given.

        A replacement image is uploaded first. The old image is deleted only
        after the record points at the new one; if any later write fails the
        new upload is removed and the old image stays in place.

        Raises:
            NotFoundError: If the product is missing or not visible
        """
        product = await self.store.get(TABLE, product_id)
        self.policy.check_or_raise(
            principal, ResourceKind.PRODUCT, product, Action.UPDATE, product_id
        )

        changes: dict[str, Any] = {
            k: fields[k]
            for k in ("name", "description", "price", "active", "stock")
            if fields.get(k) is not None
        }

        new_image_url = None
        if fields.get("imageBase64"):
            data = decode_image(fields["imageBase64"])
            new_image_url = await self.images.upload(
                data, fields.get("imageMimeType") or DEFAULT_IMAGE_TYPE
            )
            changes["imageUrl"] = new_image_url
            changes["imageUrls"] = [new_image_url]

        try:
            updated = await self._apply_update(principal, product, changes, fields)
        except (StorefrontError, StoreError):
            if new_image_url:
                await self._delete_image(new_image_url)
            raise

        old_image_url = product.get("imageUrl")
        if new_image_url and old_image_url and old_image_url != new_image_url:
            await self._delete_image(old_image_url)
        return updated

    async def _apply_update(
        self,
        principal: Principal,
        product: dict[str, Any],
        changes: dict[str, Any],
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        product_id = product["productId"]
        stripe_product_id = product.get("stripeProductId")
        if stripe_product_id:
            stripe_fields = {
                k: changes[k] for k in ("name", "description", "active") if k in changes
            }
            if "imageUrl" in changes:
                stripe_fields["images"] = [changes["imageUrl"]]
            if stripe_fields:
                await self.payments.update_product(stripe_product_id, **stripe_fields)
            if "price" in changes and changes["price"] != product.get("price"):
                price = await self.payments.create_price(
                    stripe_product_id, to_minor_units(changes["price"])
                )
                changes["stripePriceId"] = price["id"]

        sku_id = product.get("stripeSkuId")
        if sku_id:
            sku_fields: dict[str, Any] = {}
            if "price" in changes:
                sku_fields["price"] = to_minor_units(changes["price"])
            if "stock" in changes:
                sku_fields["inventory"] = {"type": "finite", "quantity": changes["stock"]}
            if sku_fields:
                await self.payments.update_sku(sku_id, **sku_fields)

        update = Update(set_fields={**changes, "updatedAt": utc_now()})
        additional = {o for o in fields.get("additionalOwnerIds") or [] if o}
        if additional:
            update.set_add["ownerIds"] = additional

        try:
            return await self.store.update(
                TABLE,
                product_id,
                update,
                condition=And(
                    Exists("productId"),
                    membership_condition(principal, ResourceKind.PRODUCT),
                ),
            )
        except ConditionFailedError:
            raise NotFoundError(
                f"Product {product_id} not found",
                resource_type="product",
                resource_id=product_id,
            ) from None

    async def delete_product(self, principal: Principal, product_id: str) -> dict[str, Any]:
        """Remove the Stripe product and image, then the record.

        Raises:
            NotFoundError: If the product is missing or not visible
            PartialFailureError: If the record was deleted but its category
                count was not updated; deleting again finishes it
        """
        product = await self.store.get(TABLE, product_id)
        if product is None:
            # A delete whose category count update failed is finished here
            return await self.integrity.delete_product(principal, product_id)
        self.policy.check_or_raise(
            principal, ResourceKind.PRODUCT, product, Action.DELETE, product_id
        )

        if product.get("stripeSkuId"):
            try:
                await self.payments.delete_sku(product["stripeSkuId"])
            except UpstreamFailureError as e:
                if e.upstream_code != "resource_missing":
                    raise
        stripe_product_id = product.get("stripeProductId")
        if stripe_product_id:
            try:
                await self.payments.delete_product(stripe_product_id)
            except UpstreamFailureError as e:
                if e.upstream_code != "resource_missing":
                    raise
        if product.get("imageUrl"):
            await self._delete_image(product["imageUrl"])

        return await self.integrity.delete_product(principal, product_id)

    async def _delete_image(self, url: str) -> None:
        try:
            await self.images.delete(url)
        except UpstreamFailureError as e:
            logger.warning("Could not delete image", extra={"url": url, "error": e.message})

    async def _discard(self, image_url: str | None, stripe_product: dict[str, Any] | None) -> None:
        """Undo external writes of a failed create."""
        if image_url:
            await self._delete_image(image_url)
        if stripe_product:
            try:
                await self.payments.update_product(stripe_product["id"], active=False)
            except UpstreamFailureError as e:
                logger.warning(
                    "Could not archive orphaned Stripe product",
                    extra={"stripe_product_id": stripe_product["id"], "error": e.message},
                )
