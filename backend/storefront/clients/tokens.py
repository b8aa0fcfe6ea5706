"""
Bearer token verification against the Cognito user pool JWKS.

Tokens are RS256 JWTs. The signing key is looked up by kid in the pool's
JWKS document (cached by PyJWKClient); issuer is always checked, audience
only when a client id is configured.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import jwt

from ..errors import AuthenticationError

logger = logging.getLogger(__name__)


class TokenVerifier:
    """Verifies bearer tokens and returns their claims.

    Example:
        >>> verifier = TokenVerifier(config.cognito)
        >>> claims = await verifier.verify(token)
        >>> claims["sub"]
        'b1f0...'
    """

    def __init__(self, config: Any, jwks_client: jwt.PyJWKClient | None = None) -> None:
        self.issuer = config.issuer
        self.audience = config.client_id
        self._jwks = jwks_client or jwt.PyJWKClient(config.jwks_uri)

    async def verify(self, token: str) -> dict[str, Any]:
        """Return the claims of a valid token.

        Raises:
            AuthenticationError: If the token is malformed, expired, or not
                signed by the pool
        """
        try:
            # PyJWKClient fetches over blocking urllib
            signing_key = await asyncio.to_thread(self._jwks.get_signing_key_from_jwt, token)
            options = {"verify_aud": self.audience is not None}
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                issuer=self.issuer,
                audience=self.audience,
                options=options,
            )
        except jwt.PyJWTError as e:
            logger.info("Token rejected", extra={"error": str(e)})
            raise AuthenticationError(f"Invalid token: {e}") from e
