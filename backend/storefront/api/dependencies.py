"""
FastAPI dependencies: the runtime container, the caller, scope checks.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from fastapi import Depends, Request

from ..access.principal import Principal
from ..errors import AuthenticationError
from ..server import Storefront


def get_storefront(request: Request) -> Storefront:
    """Get the runtime container from app state."""
    return request.app.state.storefront


async def get_principal(
    request: Request,
    storefront: Storefront = Depends(get_storefront),
) -> Principal:
    """Verify the bearer token and build the caller's principal.

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Missing bearer token")

    claims = await storefront.verifier.verify(token.strip())
    try:
        return Principal.from_claims(claims)
    except ValueError as e:
        raise AuthenticationError(str(e)) from e


def require_scopes(*scopes: str) -> Callable[..., Awaitable[Principal]]:
    """Dependency factory: the caller, provided it holds every scope.

    Example:
        >>> @router.get("/products")
        ... async def list_products(principal: Principal = Depends(require_scopes("Products:Read"))):
        ...     ...
    """

    async def dependency(
        principal: Principal = Depends(get_principal),
        storefront: Storefront = Depends(get_storefront),
    ) -> Principal:
        storefront.policy.require_scopes(principal, *scopes)
        return principal

    return dependency
