"""
Shared fixtures: an in-memory store, the access policy and a fully wired
Storefront container running on fakes.
"""

import pytest

from backend.storefront.access.policy import AccessPolicyEvaluator
from backend.storefront.access.principal import Principal
from backend.storefront.config import CognitoConfig, IntegrityConfig, PropagationConfig, ServerConfig, StoreBackend
from backend.storefront.server import Storefront
from backend.storefront.store.memory import InMemoryDocumentStore
from tests.fakes import (
    FakeIdentityProvider,
    FakeNotifier,
    FakeObjectStore,
    FakePaymentProcessor,
    FakeVerifier,
    FlakyStore,
)

ALL_SCOPES = [
    f"{group}:{action}"
    for group in ("Users", "Categories", "Products")
    for action in ("Read", "Create", "Update", "Delete")
] + [
    "Customers:Read",
    "Customers:Details",
    "Customers:Update",
    "Customers:Delete",
    "Orders:Read",
    "Orders:Update",
    "Orders:Delete",
    "Orders:Refund",
]


def make_principal(sub: str, scopes=None, family_id=None) -> Principal:
    return Principal(
        subject_id=sub,
        scopes=frozenset(ALL_SCOPES if scopes is None else scopes),
        family_id=family_id,
    )


@pytest.fixture
def store():
    """Create a fresh in-memory store."""
    return InMemoryDocumentStore()


@pytest.fixture
def flaky_store():
    """Create an in-memory store with injectable transient failures."""
    return FlakyStore()


@pytest.fixture
def policy():
    return AccessPolicyEvaluator()


@pytest.fixture
def test_config():
    """Memory-backed configuration with instant retries."""
    return ServerConfig(
        store_backend=StoreBackend.MEMORY,
        cognito=CognitoConfig(user_pool_id="pool-test", customer_pool_id="pool-customers"),
        propagation=PropagationConfig(max_retries=3, retry_delay_ms=0, max_concurrency=4),
        integrity=IntegrityConfig(max_retries=3, retry_delay_ms=0),
    )


@pytest.fixture
def storefront(test_config, flaky_store):
    """Create a Storefront container wired to fakes (not yet started)."""
    return Storefront(
        test_config,
        store=flaky_store,
        payments=FakePaymentProcessor(),
        identity=FakeIdentityProvider(),
        customer_identity=FakeIdentityProvider(),
        images=FakeObjectStore(),
        notifier=FakeNotifier(),
        verifier=FakeVerifier(),
    )
