"""
Configuration management for the Storefront backend.

All configuration is done via environment variables - no config files inside
the Lambda/container image. This module provides typed configuration classes
with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for critical settings
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Table names are part of the deployment contract, never rename defaults
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported document store backends."""

    MEMORY = "memory"
    DYNAMODB = "dynamodb"


@dataclass(frozen=True)
class DynamoConfig:
    """DynamoDB document store configuration.

    Attributes:
        region: AWS region
        endpoint_url: Custom endpoint URL (for DynamoDB Local)
        users_table: Physical table for users
        categories_table: Physical table for categories
        products_table: Physical table for products
        customers_table: Physical table for customers
        orders_table: Physical table for orders
        cascades_table: Physical table for the cascade ledger
    """

    region: str = "us-east-1"
    endpoint_url: str | None = None
    users_table: str = "users"
    categories_table: str = "categories"
    products_table: str = "products"
    customers_table: str = "customers"
    orders_table: str = "orders"
    cascades_table: str = "cascades"

    @classmethod
    def from_env(cls) -> DynamoConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT"),
            users_table=os.getenv("USERS_TABLE", "users"),
            categories_table=os.getenv("CATEGORIES_TABLE", "categories"),
            products_table=os.getenv("PRODUCTS_TABLE", "products"),
            customers_table=os.getenv("CUSTOMERS_TABLE", "customers"),
            orders_table=os.getenv("ORDERS_TABLE", "orders"),
            cascades_table=os.getenv("CASCADES_TABLE", "cascades"),
        )

    @property
    def table_names(self) -> dict[str, str]:
        """Logical table name -> physical table name."""
        return {
            "users": self.users_table,
            "categories": self.categories_table,
            "products": self.products_table,
            "customers": self.customers_table,
            "orders": self.orders_table,
            "cascades": self.cascades_table,
        }


@dataclass(frozen=True)
class CognitoConfig:
    """Cognito identity provider configuration.

    Attributes:
        region: AWS region of the user pools
        user_pool_id: Pool holding staff users (the token issuer)
        customer_pool_id: Pool holding shop customers
        client_id: App client id, checked as token audience when set
        endpoint_url: Custom endpoint URL (for local emulators)
    """

    region: str = "us-east-1"
    user_pool_id: str = ""
    customer_pool_id: str = ""
    client_id: str | None = None
    endpoint_url: str | None = None

    @classmethod
    def from_env(cls) -> CognitoConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("COGNITO_REGION", os.getenv("AWS_REGION", "us-east-1")),
            user_pool_id=os.getenv("USER_POOL_ID", ""),
            customer_pool_id=os.getenv("CUSTOMER_POOL_ID", ""),
            client_id=os.getenv("CLIENT_ID"),
            endpoint_url=os.getenv("COGNITO_ENDPOINT"),
        )

    @property
    def issuer(self) -> str:
        """Token issuer URL for the staff user pool."""
        return f"https://cognito-idp.{self.region}.amazonaws.com/{self.user_pool_id}"

    @property
    def jwks_uri(self) -> str:
        """JWKS document URL for the staff user pool."""
        return f"{self.issuer}/.well-known/jwks.json"


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for product and profile images.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        image_prefix: Key prefix for uploaded product images
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "storefront-images"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    image_prefix: str = "products"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET_NAME", "storefront-images"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            image_prefix=os.getenv("S3_IMAGE_PREFIX", "products"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class StripeConfig:
    """Stripe payment processor configuration.

    Attributes:
        secret_key: Stripe secret API key
        api_base: API base URL (overridable for stripe-mock)
        currency: Currency used for prices
        timeout_seconds: HTTP timeout for Stripe calls
    """

    secret_key: str = ""
    api_base: str = "https://api.stripe.com/v1"
    currency: str = "usd"
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> StripeConfig:
        """Load configuration from environment variables."""
        return cls(
            secret_key=os.getenv("STRIPE_SECRET_KEY", ""),
            api_base=os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1"),
            currency=os.getenv("STRIPE_CURRENCY", "usd"),
            timeout_seconds=float(os.getenv("STRIPE_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class RealtimeConfig:
    """API Gateway websocket channel used to notify connected users.

    Attributes:
        enabled: Whether user deletion pushes a realtime message
        endpoint_url: Management endpoint of the websocket API stage
        region: AWS region
    """

    enabled: bool = False
    endpoint_url: str | None = None
    region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> RealtimeConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=os.getenv("REALTIME_ENABLED", "false").lower() == "true",
            endpoint_url=os.getenv("REALTIME_ENDPOINT"),
            region=os.getenv("AWS_REGION", "us-east-1"),
        )


@dataclass(frozen=True)
class PropagationConfig:
    """Ownership fan-out configuration.

    Attributes:
        max_retries: Attempts per member update before it is reported failed
        retry_delay_ms: Base delay between attempts (doubled each retry)
        max_concurrency: Concurrent member updates per fan-out
    """

    max_retries: int = 3
    retry_delay_ms: int = 100
    max_concurrency: int = 8

    @classmethod
    def from_env(cls) -> PropagationConfig:
        """Load configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("PROPAGATION_MAX_RETRIES", "3")),
            retry_delay_ms=int(os.getenv("PROPAGATION_RETRY_DELAY_MS", "100")),
            max_concurrency=int(os.getenv("PROPAGATION_MAX_CONCURRENCY", "8")),
        )


@dataclass(frozen=True)
class IntegrityConfig:
    """Referential integrity configuration.

    Attributes:
        scrub_owner_on_category_delete: Remove the deleting owner from the
            ownership set of every product in the category (legacy behaviour)
        max_retries: Attempts per product during a rename cascade
        retry_delay_ms: Base delay between attempts
    """

    scrub_owner_on_category_delete: bool = False
    max_retries: int = 3
    retry_delay_ms: int = 100

    @classmethod
    def from_env(cls) -> IntegrityConfig:
        """Load configuration from environment variables."""
        return cls(
            scrub_owner_on_category_delete=os.getenv(
                "SCRUB_OWNER_ON_CATEGORY_DELETE", "false"
            ).lower()
            == "true",
            max_retries=int(os.getenv("CASCADE_MAX_RETRIES", "3")),
            retry_delay_ms=int(os.getenv("CASCADE_RETRY_DELAY_MS", "100")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete backend configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        store_backend: Which document store to use
        dynamodb: DynamoDB configuration
        cognito: Cognito configuration
        s3: S3 configuration
        stripe: Stripe configuration
        realtime: Realtime channel configuration
        propagation: Ownership fan-out configuration
        integrity: Cascade configuration
        observability: Observability configuration
    """

    store_backend: StoreBackend = StoreBackend.DYNAMODB
    dynamodb: DynamoConfig = field(default_factory=DynamoConfig)
    cognito: CognitoConfig = field(default_factory=CognitoConfig)
    s3: S3Config = field(default_factory=S3Config)
    stripe: StripeConfig = field(default_factory=StripeConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    propagation: PropagationConfig = field(default_factory=PropagationConfig)
    integrity: IntegrityConfig = field(default_factory=IntegrityConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "dynamodb").lower()
        try:
            store_backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(
                f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: memory, dynamodb"
            )

        config = cls(
            store_backend=store_backend,
            dynamodb=DynamoConfig.from_env(),
            cognito=CognitoConfig.from_env(),
            s3=S3Config.from_env(),
            stripe=StripeConfig.from_env(),
            realtime=RealtimeConfig.from_env(),
            propagation=PropagationConfig.from_env(),
            integrity=IntegrityConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.cognito.user_pool_id:
            raise ValueError("USER_POOL_ID is required")

        if self.store_backend == StoreBackend.DYNAMODB:
            missing = [k for k, v in self.dynamodb.table_names.items() if not v]
            if missing:
                raise ValueError(f"Table names must not be empty: {missing}")

        if self.realtime.enabled and not self.realtime.endpoint_url:
            raise ValueError("REALTIME_ENDPOINT is required when REALTIME_ENABLED=true")

        if self.propagation.max_retries < 1:
            raise ValueError("PROPAGATION_MAX_RETRIES must be at least 1")

        if not self.stripe.secret_key:
            logger.warning("STRIPE_SECRET_KEY is not set; payment calls will be rejected")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "store_backend": self.store_backend.value,
                "dynamodb_region": self.dynamodb.region,
                "tables": self.dynamodb.table_names,
                "user_pool_id": self.cognito.user_pool_id,
                "s3_bucket": self.s3.bucket,
                "stripe_configured": bool(self.stripe.secret_key),
                "realtime_enabled": self.realtime.enabled,
                "scrub_owner_on_category_delete": self.integrity.scrub_owner_on_category_delete,
                "log_level": self.observability.log_level,
            },
        )
