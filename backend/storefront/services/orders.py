"""
Order administration.

Orders are created by the checkout flow outside this service. Here they
are listed, moved through statuses and refunded. statusHistory is
append-only: every status change adds a {status, timestamp} entry.
"""

from __future__ import annotations

import logging
from typing import Any

from ..clients.base import PaymentProcessor
from ..core.clock import utc_now
from ..errors import NotFoundError
from ..store.base import ConditionFailedError, DocumentStore, Exists, Update

logger = logging.getLogger(__name__)

TABLE = "orders"
REFUNDED_STATUS = "Item returned"


def _not_found(order_id: str) -> NotFoundError:
    return NotFoundError(
        f"Order {order_id} not found",
        resource_type="order",
        resource_id=order_id,
    )


class OrderService:
    def __init__(self, store: DocumentStore, payments: PaymentProcessor) -> None:
        self.store = store
        self.payments = payments

    async def list_orders(self) -> list[dict[str, Any]]:
        return await self.store.scan(TABLE)

    async def get_order(self, order_id: str) -> dict[str, Any]:
        order = await self.store.get(TABLE, order_id)
        if order is None:
            raise _not_found(order_id)
        return order

    async def update_status(self, order_id: str, status: str) -> dict[str, Any]:
        try:
            order = await self.store.update(
                TABLE,
                order_id,
                Update(
                    set_fields={"currentStatus": status},
                    list_append={"statusHistory": [{"status": status, "timestamp": utc_now()}]},
                ),
                condition=Exists("orderId"),
            )
        except ConditionFailedError:
            raise _not_found(order_id) from None

        logger.info("Order status changed", extra={"order_id": order_id, "status": status})
        return order

    async def delete_order(self, order_id: str) -> None:
        try:
            await self.store.delete(TABLE, order_id, condition=Exists("orderId"))
        except ConditionFailedError:
            raise _not_found(order_id) from None

    async def refund_order(self, order_id: str) -> dict[str, Any]:
        """Refund the order's charge and mark it returned.

        Orders written before chargeId existed used the charge id as the
        order id.
        """
        order = await self.get_order(order_id)
        charge_id = order.get("chargeId") or order_id

        refund = await self.payments.create_refund(charge_id)
        updated = await self.update_status(order_id, REFUNDED_STATUS)

        logger.info(
            "Order refunded",
            extra={"order_id": order_id, "charge_id": charge_id, "refund_id": refund.get("id")},
        )
        return {"refund": refund, "order": updated}
