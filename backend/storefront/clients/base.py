"""
Protocols for external collaborators.

Services depend on these protocols only. Concrete clients are constructed
once at startup and injected; nothing in the request path creates clients
or reads credentials.

Invariants:
    - Every failure of an external call surfaces as UpstreamFailureError,
      except RealtimeNotifier.push which never raises
    - Amounts passed to PaymentProcessor are in minor units (cents)

How to change safely:
    - Protocol changes require updating the concrete client and the test
      fakes together
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class PaymentProcessor(Protocol):
    """Catalogue, balance and refund operations of the payment processor."""

    @abstractmethod
    async def create_product(
        self,
        name: str,
        description: str | None = None,
        images: list[str] | None = None,
        active: bool = True,
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def update_product(self, product_id: str, **fields: Any) -> dict[str, Any]: ...

    @abstractmethod
    async def delete_product(self, product_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def create_price(
        self, product_id: str, unit_amount: int, currency: str | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def create_sku(
        self, product_id: str, price: int, inventory: dict[str, Any] | None = None
    ) -> dict[str, Any]: ...

    @abstractmethod
    async def update_sku(self, sku_id: str, **fields: Any) -> dict[str, Any]: ...

    @abstractmethod
    async def delete_sku(self, sku_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def list_balance_transactions(self, limit: int = 100) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def retrieve_balance_transaction(self, transaction_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def retrieve_balance(self) -> dict[str, Any]: ...

    @abstractmethod
    async def list_refunds(self, limit: int = 100) -> dict[str, Any]: ...

    @abstractmethod
    async def create_refund(self, charge_id: str) -> dict[str, Any]: ...

    @abstractmethod
    async def list_charges(self, customer_id: str, limit: int = 100) -> list[dict[str, Any]]: ...

    @abstractmethod
    async def delete_customer(self, customer_id: str) -> dict[str, Any]: ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Administrative operations on one identity pool."""

    @abstractmethod
    async def create_user(self, username: str, attributes: dict[str, str]) -> str:
        """Create an account and return its subject id."""
        ...

    @abstractmethod
    async def get_user_status(self, username: str) -> str | None: ...

    @abstractmethod
    async def update_user_attributes(self, username: str, attributes: dict[str, str]) -> None: ...

    @abstractmethod
    async def delete_user(self, username: str) -> None: ...

    @abstractmethod
    async def disable_user(self, username: str) -> None: ...

    @abstractmethod
    async def enable_user(self, username: str) -> None: ...


@runtime_checkable
class ObjectStore(Protocol):
    """Blob storage for images."""

    @abstractmethod
    async def upload(self, data: bytes, content_type: str) -> str:
        """Store data and return its public URL."""
        ...

    @abstractmethod
    async def delete(self, url: str) -> None: ...


@runtime_checkable
class RealtimeNotifier(Protocol):
    """Push channel to connected browser sessions."""

    @abstractmethod
    async def push(self, connection_id: str, message: dict[str, Any]) -> bool:
        """Send a message; return False if it could not be delivered."""
        ...
