"""
Error types for the Storefront backend.

This module defines the exception taxonomy raised by services and core
components:
- StorefrontError: Base exception
- NotFoundError: Resource or referenced foreign key missing (also used for
  record-level access denials, so existence is never leaked)
- AccessDeniedError: Caller lacks a permission scope
- InvalidInputError: Type/shape validation failures
- ConflictError: Delete-with-dependents, duplicate email
- UpstreamFailureError: Stripe / Cognito / S3 errors
- PartialFailureError: Multi-record cascade completed only partially
- AuthenticationError: Missing or invalid bearer token

Invariants:
    - All errors inherit from StorefrontError
    - Errors carry a stable code for programmatic handling
    - Upstream errors preserve the originating message
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .core.reports import CascadeReport


class StorefrontError(Exception):
    """Base exception for all Storefront errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "STOREFRONT_ERROR"
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON error body returned by the API."""
        return {
            "error": self.message,
            "error_code": self.code,
            "details": self.details,
        }


class NotFoundError(StorefrontError):
    """Resource not found.

    Raised when:
    - A record doesn't exist
    - A record exists but the caller is not allowed to see it
    - A referenced foreign key (categoryId) is missing
    """

    status_code = 404

    def __init__(
        self,
        message: str,
        resource_type: str,
        resource_id: str,
        code: str = "NOT_FOUND",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={
                "resource_type": resource_type,
                "resource_id": resource_id,
            },
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class InvalidCategoryError(NotFoundError):
    """Product references a category that doesn't exist or isn't visible."""

    def __init__(self, category_id: str) -> None:
        super().__init__(
            f"Invalid categoryId: {category_id}",
            resource_type="category",
            resource_id=category_id,
            code="INVALID_CATEGORY",
        )


class AccessDeniedError(StorefrontError):
    """Access denied.

    Raised when the caller's token lacks a required permission scope.
    Record-level denials are reported as NotFoundError instead.
    """

    status_code = 403

    def __init__(
        self,
        message: str,
        actor: str,
        missing_scopes: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="ACCESS_DENIED",
            details={
                "actor": actor,
                "missing_scopes": missing_scopes or [],
            },
        )
        self.actor = actor
        self.missing_scopes = missing_scopes or []


class AuthenticationError(StorefrontError):
    """Bearer token missing, malformed or rejected."""

    status_code = 401

    def __init__(self, message: str) -> None:
        super().__init__(message, code="UNAUTHENTICATED")


class InvalidInputError(StorefrontError):
    """Request payload failed validation."""

    status_code = 400

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="INVALID_INPUT",
            details={"field": field_name},
        )
        self.field_name = field_name


class ConflictError(StorefrontError):
    """Operation conflicts with current state.

    Raised when:
    - A category still has products (HAS_PRODUCTS)
    - An email is already registered (DUPLICATE_EMAIL)
    - A conditional write lost a race
    """

    status_code = 409

    def __init__(
        self,
        message: str,
        reason: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={"reason": reason, **(details or {})},
        )
        self.reason = reason


class UpstreamFailureError(StorefrontError):
    """An external collaborator (Stripe, Cognito, S3) failed."""

    status_code = 502

    def __init__(
        self,
        message: str,
        service: str,
        upstream_code: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code="UPSTREAM_FAILURE",
            details={"service": service, "upstream_code": upstream_code},
        )
        self.service = service
        self.upstream_code = upstream_code


class PartialFailureError(StorefrontError):
    """A cascade or fan-out finished with some members failed.

    The operation is retryable: re-running it resumes from the ledger and
    only touches members that have not completed yet.
    """

    status_code = 207

    def __init__(self, report: CascadeReport) -> None:
        failed = len(report.failed)
        super().__init__(
            f"{report.kind} completed partially: {failed} member(s) failed",
            code="PARTIAL_FAILURE",
            details=report.to_dict(),
        )
        self.report = report
