"""
Clients for external collaborators: Stripe, Cognito, S3, API Gateway.
"""

from .base import IdentityProvider, ObjectStore, PaymentProcessor, RealtimeNotifier
from .cognito import CognitoIdentityProvider
from .realtime import ApiGatewayNotifier, NullNotifier
from .s3 import S3ObjectStore
from .stripe_client import StripeClient, encode_form
from .tokens import TokenVerifier

__all__ = [
    "ApiGatewayNotifier",
    "CognitoIdentityProvider",
    "IdentityProvider",
    "NullNotifier",
    "ObjectStore",
    "PaymentProcessor",
    "RealtimeNotifier",
    "S3ObjectStore",
    "StripeClient",
    "TokenVerifier",
    "encode_form",
]
