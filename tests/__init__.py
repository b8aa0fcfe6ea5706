"""
Storefront Test Suite.

This package contains:
- unit/: Unit tests (in-memory store, fake collaborators)
- integration/: Multi-service flows and the HTTP surface
- fakes.py: In-process stand-ins for Stripe, Cognito, S3 and the realtime channel
"""
