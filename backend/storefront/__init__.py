"""
Storefront - multi-tenant commerce backend.

This package implements the HTTP backend for a small-shop commerce platform:
- Users, categories, products, customers and orders stored as documents
- Stripe as payment processor, Cognito as identity provider, S3 for images
- A family/collaborator ownership model deciding who sees which records

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌──────────────────────┐
    │   Client    │────▶│  FastAPI     │────▶│  Services            │
    │  (bearer)   │     │  routes      │     │  (users, products..) │
    └─────────────┘     └──────────────┘     └──────────┬───────────┘
                                                        │
                        ┌───────────────────────────────┼──────────────┐
                        │                               │              │
                        ▼                               ▼              ▼
                ┌───────────────┐             ┌──────────────┐  ┌────────────┐
                │ Access policy │             │ Integrity /  │  │  Clients   │
                │  evaluator    │             │ propagation  │  │ (Stripe,   │
                └───────────────┘             │ / counters   │  │ Cognito,S3)│
                                              └──────┬───────┘  └────────────┘
                                                     ▼
                                             ┌──────────────┐
                                             │ DocumentStore│
                                             │ (DynamoDB)   │
                                             └──────────────┘

Invariants:
    - Every request carries a verified principal
    - Ownership sets are never empty and always contain the creator
    - Category.productCount equals the number of live products in it
    - Product.categoryName mirrors the name of its category

How to change safely:
    - New ownership shapes must be added as a new descriptor variant
    - Cascades must record progress in the ledger before reporting success
    - Store writes that depend on ownership must carry a condition
"""

from ._version import __version__

__all__ = ["__version__"]
