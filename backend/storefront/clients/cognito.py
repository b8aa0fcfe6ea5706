"""
Cognito identity provider client.

One instance manages one user pool: staff users live in the user pool,
shop customers in the customer pool.
"""

from __future__ import annotations

import logging

from botocore.exceptions import ClientError

from .aws import AwsClient, client_error_code

logger = logging.getLogger(__name__)


class CognitoIdentityProvider(AwsClient):
    """IdentityProvider backed by Cognito admin APIs.

    Example:
        >>> idp = CognitoIdentityProvider("eu-west-1_abc", region="eu-west-1")
        >>> await idp.connect()
        >>> sub = await idp.create_user("ada@example.com", {"email": "ada@example.com"})
    """

    service_name = "cognito-idp"

    def __init__(self, user_pool_id: str, region: str, endpoint_url: str | None = None) -> None:
        super().__init__(region=region, endpoint_url=endpoint_url)
        self.user_pool_id = user_pool_id

    async def create_user(self, username: str, attributes: dict[str, str]) -> str:
        """Create the account and return its sub attribute."""
        try:
            response = await self.client.admin_create_user(
                UserPoolId=self.user_pool_id,
                Username=username,
                UserAttributes=[{"Name": k, "Value": v} for k, v in attributes.items()],
                DesiredDeliveryMediums=["EMAIL"],
            )
        except ClientError as e:
            raise self.upstream_error("AdminCreateUser", e) from e

        user = response.get("User", {})
        for attribute in user.get("Attributes", []):
            if attribute.get("Name") == "sub":
                return attribute["Value"]
        return user.get("Username", username)

    async def get_user_status(self, username: str) -> str | None:
        try:
            response = await self.client.admin_get_user(
                UserPoolId=self.user_pool_id,
                Username=username,
            )
        except ClientError as e:
            if client_error_code(e) == "UserNotFoundException":
                return None
            raise self.upstream_error("AdminGetUser", e) from e
        return response.get("UserStatus")

    async def update_user_attributes(self, username: str, attributes: dict[str, str]) -> None:
        if not attributes:
            return
        try:
            await self.client.admin_update_user_attributes(
                UserPoolId=self.user_pool_id,
                Username=username,
                UserAttributes=[{"Name": k, "Value": v} for k, v in attributes.items()],
            )
        except ClientError as e:
            raise self.upstream_error("AdminUpdateUserAttributes", e) from e

    async def delete_user(self, username: str) -> None:
        try:
            await self.client.admin_delete_user(UserPoolId=self.user_pool_id, Username=username)
        except ClientError as e:
            if client_error_code(e) == "UserNotFoundException":
                logger.info("Identity already deleted", extra={"username": username})
                return
            raise self.upstream_error("AdminDeleteUser", e) from e

    async def disable_user(self, username: str) -> None:
        try:
            await self.client.admin_disable_user(UserPoolId=self.user_pool_id, Username=username)
        except ClientError as e:
            raise self.upstream_error("AdminDisableUser", e) from e

    async def enable_user(self, username: str) -> None:
        try:
            await self.client.admin_enable_user(UserPoolId=self.user_pool_id, Username=username)
        except ClientError as e:
            raise self.upstream_error("AdminEnableUser", e) from e
