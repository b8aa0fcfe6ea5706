"""
Realtime push over an API Gateway websocket API.

Delivery is best effort: a stale connection ("GoneException") or any other
failure is logged and reported as False, never raised.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from botocore.exceptions import ClientError

from .aws import AwsClient, client_error_code

logger = logging.getLogger(__name__)


class ApiGatewayNotifier(AwsClient):
    """RealtimeNotifier backed by apigatewaymanagementapi PostToConnection."""

    service_name = "apigatewaymanagementapi"

    def __init__(self, endpoint_url: str, region: str) -> None:
        super().__init__(region=region, endpoint_url=endpoint_url)

    async def push(self, connection_id: str, message: dict[str, Any]) -> bool:
        try:
            await self.client.post_to_connection(
                ConnectionId=connection_id,
                Data=json.dumps(message).encode("utf-8"),
            )
        except ClientError as e:
            code = client_error_code(e)
            if code == "GoneException":
                logger.info("Realtime connection gone", extra={"connection_id": connection_id})
            else:
                logger.warning(
                    "Realtime push failed",
                    extra={"connection_id": connection_id, "error_code": code},
                )
            return False
        except Exception as e:
            logger.warning(
                f"Realtime push failed: {e}",
                extra={"connection_id": connection_id},
            )
            return False
        return True


class NullNotifier:
    """Notifier used when the realtime channel is disabled."""

    async def push(self, connection_id: str, message: dict[str, Any]) -> bool:
        logger.debug("Realtime disabled, dropping push", extra={"connection_id": connection_id})
        return False
