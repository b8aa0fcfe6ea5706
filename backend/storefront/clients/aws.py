"""
Shared aiobotocore client lifecycle.

Each AWS-backed client owns one aiobotocore client, created in connect()
and released in close().
"""

from __future__ import annotations

import logging
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import ClientError

from ..errors import UpstreamFailureError

logger = logging.getLogger(__name__)


def client_error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


class AwsClient:
    """Base class owning an aiobotocore client for one service."""

    service_name: str = ""

    def __init__(
        self,
        region: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self._session = None
        self._client_ctx = None
        self._client = None

    @property
    def client(self) -> Any:
        if self._client is None:
            raise UpstreamFailureError(
                f"{self.service_name} client is not connected",
                service=self.service_name,
            )
        return self._client

    async def connect(self) -> None:
        if self._client is not None:
            return

        self._session = get_session()
        client_kwargs: dict[str, Any] = {"region_name": self.region}
        if self.endpoint_url:
            client_kwargs["endpoint_url"] = self.endpoint_url
        if self.access_key_id:
            client_kwargs["aws_access_key_id"] = self.access_key_id
            client_kwargs["aws_secret_access_key"] = self.secret_access_key

        self._client_ctx = self._session.create_client(self.service_name, **client_kwargs)
        self._client = await self._client_ctx.__aenter__()
        logger.info(
            f"Connected to {self.service_name}",
            extra={"region": self.region, "endpoint": self.endpoint_url or "AWS"},
        )

    async def close(self) -> None:
        if self._client is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing {self.service_name} client: {e}")
        self._client = None
        self._client_ctx = None
        self._session = None

    def upstream_error(self, action: str, error: ClientError) -> UpstreamFailureError:
        code = client_error_code(error)
        message = error.response.get("Error", {}).get("Message") or str(error)
        logger.warning(
            f"{self.service_name} {action} failed",
            extra={"error_code": code, "error": message},
        )
        return UpstreamFailureError(message, service=self.service_name, upstream_code=code)
