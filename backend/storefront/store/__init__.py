"""
Document store layer.

Backends:
- InMemoryDocumentStore: tests and local development
- DynamoDocumentStore: production (aiobotocore)
"""

from .base import (
    KEY_ATTRIBUTES,
    And,
    Condition,
    ConditionFailedError,
    Contains,
    DocumentStore,
    Equals,
    Exists,
    GreaterThan,
    NotEquals,
    NotExists,
    Or,
    StoreError,
    StoreUnavailableError,
    UnknownTableError,
    Update,
    key_attribute,
)
from .memory import InMemoryDocumentStore

__all__ = [
    "KEY_ATTRIBUTES",
    "And",
    "Condition",
    "ConditionFailedError",
    "Contains",
    "DocumentStore",
    "Equals",
    "Exists",
    "GreaterThan",
    "InMemoryDocumentStore",
    "NotEquals",
    "NotExists",
    "Or",
    "StoreError",
    "StoreUnavailableError",
    "UnknownTableError",
    "Update",
    "key_attribute",
]
