"""
Read-only views over the payment processor: transactions, balance, refunds.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ..clients.base import PaymentProcessor

LIST_LIMIT = 100


class PaymentIntrospectionService:
    def __init__(self, payments: PaymentProcessor) -> None:
        self.payments = payments

    async def list_transactions(self) -> list[dict[str, Any]]:
        return await self.payments.list_balance_transactions(limit=LIST_LIMIT)

    async def get_balance(self) -> dict[str, Any]:
        return await self.payments.retrieve_balance()

    async def list_refunds(self) -> dict[str, Any]:
        return await self.payments.list_refunds(limit=LIST_LIMIT)

    async def customer_balance_transactions(self, stripe_customer_id: str) -> list[dict[str, Any]]:
        """Charges of a customer joined with their balance transactions.

        Charges without a balance transaction (not yet settled) are left out.
        """
        charges = await self.payments.list_charges(stripe_customer_id, limit=LIST_LIMIT)
        settled = [c for c in charges if c.get("balance_transaction")]

        transactions = await asyncio.gather(
            *(
                self.payments.retrieve_balance_transaction(c["balance_transaction"])
                for c in settled
            )
        )
        return [
            {
                "chargeId": charge["id"],
                "balanceTransactionId": charge["balance_transaction"],
                "amount": txn.get("amount"),
                "fee": txn.get("fee"),
                "net": txn.get("net"),
                "currency": txn.get("currency"),
                "description": charge.get("description"),
            }
            for charge, txn in zip(settled, transactions)
        ]
