"""
Stripe REST client.

Talks to the Stripe API directly over httpx: form-encoded request bodies,
bearer authentication with the secret key, JSON responses.

Invariants:
    - One AsyncClient per process, opened by connect() and closed by close()
    - Any non-2xx response raises UpstreamFailureError carrying Stripe's
      error code and message
    - Calls are never retried here; Stripe writes are not idempotent without
      an idempotency key

How to change safely:
    - Test against stripe-mock (STRIPE_API_BASE) before changing encodings
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ..errors import UpstreamFailureError

logger = logging.getLogger(__name__)


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested params into Stripe's bracketed form encoding.

    Example:
        >>> encode_form({"inventory": {"type": "finite", "quantity": 3}, "active": True})
        [('inventory[type]', 'finite'), ('inventory[quantity]', '3'), ('active', 'true')]
    """
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else key
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, f"{name}[{index}]"))
                else:
                    pairs.append((f"{name}[{index}]", _scalar(item)))
        else:
            pairs.append((name, _scalar(value)))
    return pairs


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class StripeClient:
    """PaymentProcessor backed by the Stripe REST API.

    Example:
        >>> stripe = StripeClient(StripeConfig(secret_key="sk_test_..."))
        >>> await stripe.connect()
        >>> product = await stripe.create_product("Apple")
        >>> price = await stripe.create_price(product["id"], 150)
    """

    def __init__(self, config: Any, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self.config.api_base,
            auth=(self.config.secret_key, ""),
            timeout=self.config.timeout_seconds,
            transport=self._transport,
        )
        logger.info("Stripe client ready", extra={"api_base": self.config.api_base})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # Products, prices and SKUs

    async def create_product(
        self,
        name: str,
        description: str | None = None,
        images: list[str] | None = None,
        active: bool = True,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/products",
            {
                "name": name,
                "description": description or None,
                "images": images or None,
                "active": active,
            },
        )

    async def update_product(self, product_id: str, **fields: Any) -> dict[str, Any]:
        return await self._request("POST", f"/products/{product_id}", fields)

    async def delete_product(self, product_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/products/{product_id}")

    async def create_price(
        self, product_id: str, unit_amount: int, currency: str | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/prices",
            {
                "product": product_id,
                "unit_amount": unit_amount,
                "currency": currency or self.config.currency,
            },
        )

    async def create_sku(
        self, product_id: str, price: int, inventory: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/skus",
            {
                "product": product_id,
                "price": price,
                "currency": self.config.currency,
                "inventory": inventory or {"type": "infinite"},
            },
        )

    async def update_sku(self, sku_id: str, **fields: Any) -> dict[str, Any]:
        return await self._request("POST", f"/skus/{sku_id}", fields)

    async def delete_sku(self, sku_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/skus/{sku_id}")

    # Balance, charges and refunds

    async def list_balance_transactions(self, limit: int = 100) -> list[dict[str, Any]]:
        body = await self._request("GET", "/balance_transactions", {"limit": limit})
        return body.get("data", [])

    async def retrieve_balance_transaction(self, transaction_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/balance_transactions/{transaction_id}")

    async def retrieve_balance(self) -> dict[str, Any]:
        return await self._request("GET", "/balance")

    async def list_refunds(self, limit: int = 100) -> dict[str, Any]:
        return await self._request("GET", "/refunds", {"limit": limit})

    async def create_refund(self, charge_id: str) -> dict[str, Any]:
        return await self._request("POST", "/refunds", {"charge": charge_id})

    async def list_charges(self, customer_id: str, limit: int = 100) -> list[dict[str, Any]]:
        body = await self._request("GET", "/charges", {"customer": customer_id, "limit": limit})
        return body.get("data", [])

    async def delete_customer(self, customer_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/customers/{customer_id}")

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if self._client is None:
            raise UpstreamFailureError("Stripe client is not connected", service="stripe")

        pairs = encode_form(params or {})
        try:
            if method == "GET":
                response = await self._client.request(method, path, params=pairs)
            else:
                response = await self._client.request(method, path, data=dict(pairs) or None)
        except httpx.HTTPError as e:
            raise UpstreamFailureError(f"Stripe request failed: {e}", service="stripe") from e

        if response.is_success:
            return response.json()

        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        message = error.get("message") or response.text or f"HTTP {response.status_code}"
        logger.warning(
            "Stripe call rejected",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "stripe_code": error.get("code"),
            },
        )
        raise UpstreamFailureError(
            message,
            service="stripe",
            upstream_code=error.get("code") or str(response.status_code),
        )
