"""
Storefront runtime container.

Builds every collaborator once from ServerConfig, wires them into the
services, and tears them down in reverse order. The HTTP layer reads the
services from this container; nothing else constructs clients.

Invariants:
    - Clients are created in start() and closed in stop(), never per request
    - Collaborators passed in explicitly are used as-is and not closed,
      the caller owns them
    - There are no module-level singletons

How to change safely:
    - New collaborators: add a constructor argument, build it in start()
      when not injected, and add it to the owned list so stop() closes it
"""

from __future__ import annotations

import logging
from typing import Any

from .access.policy import AccessPolicyEvaluator
from .clients.base import IdentityProvider, ObjectStore, PaymentProcessor, RealtimeNotifier
from .clients.cognito import CognitoIdentityProvider
from .clients.realtime import ApiGatewayNotifier, NullNotifier
from .clients.s3 import S3ObjectStore
from .clients.stripe_client import StripeClient
from .clients.tokens import TokenVerifier
from .config import ServerConfig, StoreBackend
from .core.counters import ProductCountMaintainer
from .core.integrity import ReferentialIntegrityCoordinator
from .core.ledger import CascadeLedger
from .core.propagation import OwnershipPropagationEngine
from .services import (
    CategoryService,
    CustomerService,
    OrderService,
    PaymentIntrospectionService,
    ProductService,
    UserService,
)
from .store.base import DocumentStore
from .store.memory import InMemoryDocumentStore

logger = logging.getLogger(__name__)


def create_document_store(config: ServerConfig) -> DocumentStore:
    """Build the configured document store backend."""
    if config.store_backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore()

    from .store.dynamodb import DynamoDocumentStore

    return DynamoDocumentStore(config.dynamodb)


class Storefront:
    """Owns the collaborators and services of one process.

    Example:
        >>> storefront = Storefront(ServerConfig.from_env())
        >>> await storefront.start()
        >>> products = await storefront.products.list_products(principal)
        >>> await storefront.stop()
    """

    def __init__(
        self,
        config: ServerConfig | None = None,
        *,
        store: DocumentStore | None = None,
        payments: PaymentProcessor | None = None,
        identity: IdentityProvider | None = None,
        customer_identity: IdentityProvider | None = None,
        images: ObjectStore | None = None,
        notifier: RealtimeNotifier | None = None,
        verifier: TokenVerifier | None = None,
    ) -> None:
        self.config = config or ServerConfig.from_env()
        self.store = store
        self.payments = payments
        self.identity = identity
        self.customer_identity = customer_identity
        self.images = images
        self.notifier = notifier
        self.verifier = verifier

        self.policy = AccessPolicyEvaluator()
        self._owned: list[Any] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect collaborators and build services."""
        if self._running:
            logger.warning("Storefront already running")
            return

        logger.info("Starting Storefront")
        self.config.log_config()
        cfg = self.config

        if self.store is None:
            self.store = create_document_store(cfg)
            await self._own(self.store)
        if self.payments is None:
            self.payments = StripeClient(cfg.stripe)
            await self._own(self.payments)
        if self.identity is None:
            self.identity = CognitoIdentityProvider(
                cfg.cognito.user_pool_id, cfg.cognito.region, cfg.cognito.endpoint_url
            )
            await self._own(self.identity)
        if self.customer_identity is None:
            self.customer_identity = CognitoIdentityProvider(
                cfg.cognito.customer_pool_id, cfg.cognito.region, cfg.cognito.endpoint_url
            )
            await self._own(self.customer_identity)
        if self.images is None:
            self.images = S3ObjectStore(cfg.s3)
            await self._own(self.images)
        if self.notifier is None:
            if cfg.realtime.enabled:
                self.notifier = ApiGatewayNotifier(cfg.realtime.endpoint_url, cfg.realtime.region)
                await self._own(self.notifier)
            else:
                self.notifier = NullNotifier()
        if self.verifier is None:
            self.verifier = TokenVerifier(cfg.cognito)

        self._build_services()
        self._running = True
        logger.info("Storefront started", extra={"store_backend": cfg.store_backend.value})

    async def stop(self) -> None:
        """Close owned collaborators in reverse order of creation."""
        if not self._running:
            return

        for component in reversed(self._owned):
            try:
                await component.close()
            except Exception as e:
                logger.warning(f"Error closing {type(component).__name__}: {e}")
        self._owned.clear()
        self._running = False
        logger.info("Storefront stopped")

    async def _own(self, component: Any) -> None:
        await component.connect()
        self._owned.append(component)

    def _build_services(self) -> None:
        cfg = self.config
        self.ledger = CascadeLedger(self.store)
        self.counters = ProductCountMaintainer(
            self.store,
            max_retries=cfg.integrity.max_retries,
            retry_delay_ms=cfg.integrity.retry_delay_ms,
        )
        self.propagation = OwnershipPropagationEngine(
            self.store,
            self.ledger,
            max_retries=cfg.propagation.max_retries,
            retry_delay_ms=cfg.propagation.retry_delay_ms,
            max_concurrency=cfg.propagation.max_concurrency,
        )
        self.integrity = ReferentialIntegrityCoordinator(
            self.store,
            self.policy,
            self.counters,
            self.ledger,
            scrub_owner_on_category_delete=cfg.integrity.scrub_owner_on_category_delete,
            max_retries=cfg.integrity.max_retries,
            retry_delay_ms=cfg.integrity.retry_delay_ms,
            max_concurrency=cfg.propagation.max_concurrency,
        )

        self.users = UserService(
            self.store, self.policy, self.propagation, self.identity, self.notifier
        )
        self.categories = CategoryService(self.store, self.policy, self.integrity)
        self.products = ProductService(
            self.store, self.policy, self.integrity, self.payments, self.images
        )
        self.customers = CustomerService(self.store, self.payments, self.customer_identity)
        self.orders = OrderService(self.store, self.payments)
        self.payment_views = PaymentIntrospectionService(self.payments)
