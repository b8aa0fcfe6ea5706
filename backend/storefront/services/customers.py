"""
Customer administration.

Customers are shop accounts held in the Cognito customer pool, with a
record in the customers table and a Stripe customer. Access is governed by
permission scopes only; customer records carry no ownership.
"""

from __future__ import annotations

import logging
from typing import Any

from ..clients.base import IdentityProvider, PaymentProcessor
from ..errors import NotFoundError, UpstreamFailureError
from ..store.base import ConditionFailedError, DocumentStore, Exists, Update

logger = logging.getLogger(__name__)

TABLE = "customers"


def _not_found(customer_id: str) -> NotFoundError:
    return NotFoundError(
        f"Customer {customer_id} not found",
        resource_type="customer",
        resource_id=customer_id,
    )


class CustomerService:
    def __init__(
        self,
        store: DocumentStore,
        payments: PaymentProcessor,
        identity: IdentityProvider,
    ) -> None:
        self.store = store
        self.payments = payments
        self.identity = identity

    async def list_customers(self) -> list[dict[str, Any]]:
        return await self.store.scan(TABLE)

    async def get_customer(self, customer_id: str) -> dict[str, Any]:
        """Customer record with its Stripe charges."""
        customer = await self.store.get(TABLE, customer_id)
        if customer is None:
            raise _not_found(customer_id)

        stripe_id = customer.get("customerStripeId")
        charges = await self.payments.list_charges(stripe_id) if stripe_id else []
        return {**customer, "charges": charges}

    async def update_status(
        self,
        customer_id: str,
        status: str,
        cognito_username: str | None = None,
    ) -> dict[str, Any]:
        """Set the status; active/inactive also enables/disables the login."""
        try:
            customer = await self.store.update(
                TABLE,
                customer_id,
                Update(set_fields={"status": status}),
                condition=Exists("customerId"),
            )
        except ConditionFailedError:
            raise _not_found(customer_id) from None

        username = cognito_username or customer.get("cognitoUsername") or customer.get("email")
        if username and status == "active":
            await self.identity.enable_user(username)
        elif username and status == "inactive":
            await self.identity.disable_user(username)

        logger.info("Customer status changed", extra={"customer_id": customer_id, "status": status})
        return customer

    async def delete_customer(self, customer_id: str) -> None:
        """Delete the login and the Stripe customer, then the record.

        The record goes last so a failed upstream delete can be retried;
        both upstream deletes tolerate an already missing target.
        """
        customer = await self.store.get(TABLE, customer_id)
        if customer is None:
            raise _not_found(customer_id)

        username = customer.get("cognitoUsername") or customer.get("email")
        if username:
            await self.identity.delete_user(username)

        stripe_id = customer.get("customerStripeId")
        if stripe_id:
            try:
                await self.payments.delete_customer(stripe_id)
            except UpstreamFailureError as e:
                if e.upstream_code != "resource_missing":
                    raise

        try:
            await self.store.delete(TABLE, customer_id, condition=Exists("customerId"))
        except ConditionFailedError:
            raise _not_found(customer_id) from None
        logger.info("Customer deleted", extra={"customer_id": customer_id})
