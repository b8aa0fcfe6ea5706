"""
DynamoDB document store implementation.

This module provides the production backend for the DocumentStore protocol.
It uses aiobotocore for async operations and boto3's type serializers for
the DynamoDB attribute-value wire format.

Conditions and updates are rendered into expressions by the pure functions
render_condition() and render_update(), which never touch the network and
are unit-tested directly.

Invariants:
    - Every conditional write is a single DynamoDB request (no read-then-write)
    - UpdateItem always returns ALL_NEW
    - Scan follows LastEvaluatedKey until the table is exhausted
    - Python floats are stored as Decimal and read back as int or float

How to change safely:
    - Test against DynamoDB Local before deploying to AWS
    - Keep placeholder naming (#nN / :vN) stable; tests assert on it
    - Never render an empty SET/ADD/DELETE clause (DynamoDB rejects it)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from aiobotocore.session import get_session
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError

from .base import (
    And,
    Condition,
    ConditionFailedError,
    Contains,
    Equals,
    Exists,
    GreaterThan,
    NotEquals,
    NotExists,
    Or,
    StoreError,
    StoreUnavailableError,
    Update,
    key_attribute,
)

logger = logging.getLogger(__name__)

# Error codes worth retrying
_TRANSIENT_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "InternalServerError",
        "ServiceUnavailable",
    }
)


class ExpressionBuilder:
    """Allocates attribute name/value placeholders for one request."""

    def __init__(self) -> None:
        self.names: dict[str, str] = {}
        self.values: dict[str, Any] = {}
        self._name_index: dict[str, str] = {}

    def name(self, attribute: str) -> str:
        if attribute not in self._name_index:
            placeholder = f"#n{len(self._name_index)}"
            self._name_index[attribute] = placeholder
            self.names[placeholder] = attribute
        return self._name_index[attribute]

    def value(self, value: Any) -> str:
        placeholder = f":v{len(self.values)}"
        self.values[placeholder] = value
        return placeholder


def render_condition(condition: Condition, builder: ExpressionBuilder) -> str:
    """Render a condition tree into a DynamoDB condition expression."""
    if isinstance(condition, Exists):
        return f"attribute_exists({builder.name(condition.field)})"
    if isinstance(condition, NotExists):
        return f"attribute_not_exists({builder.name(condition.field)})"
    if isinstance(condition, Equals):
        return f"{builder.name(condition.field)} = {builder.value(condition.value)}"
    if isinstance(condition, NotEquals):
        return f"{builder.name(condition.field)} <> {builder.value(condition.value)}"
    if isinstance(condition, GreaterThan):
        return f"{builder.name(condition.field)} > {builder.value(condition.value)}"
    if isinstance(condition, Contains):
        return f"contains({builder.name(condition.field)}, {builder.value(condition.value)})"
    if isinstance(condition, And):
        return " AND ".join(f"({render_condition(c, builder)})" for c in condition.conditions)
    if isinstance(condition, Or):
        return " OR ".join(f"({render_condition(c, builder)})" for c in condition.conditions)
    raise StoreError(f"Unsupported condition: {type(condition).__name__}")


def render_update(update: Update, builder: ExpressionBuilder) -> str:
    """Render an update into a DynamoDB update expression.

    ADD is used for increments and set unions, DELETE for set subtraction.
    list_append is wrapped in if_not_exists so appending to a missing list
    behaves like appending to an empty one.
    """
    set_clauses: list[str] = []
    for attribute, value in update.set_fields.items():
        set_clauses.append(f"{builder.name(attribute)} = {builder.value(value)}")
    for attribute, values in update.list_append.items():
        name = builder.name(attribute)
        empty = builder.value([])
        set_clauses.append(
            f"{name} = list_append(if_not_exists({name}, {empty}), {builder.value(list(values))})"
        )

    add_clauses: list[str] = []
    for attribute, delta in update.increments.items():
        add_clauses.append(f"{builder.name(attribute)} {builder.value(delta)}")
    for attribute, values in update.set_add.items():
        if values:
            add_clauses.append(f"{builder.name(attribute)} {builder.value(set(values))}")

    delete_clauses: list[str] = []
    for attribute, values in update.set_remove.items():
        if values:
            delete_clauses.append(f"{builder.name(attribute)} {builder.value(set(values))}")

    remove_clauses = [builder.name(attribute) for attribute in update.remove_fields]

    parts = []
    if set_clauses:
        parts.append("SET " + ", ".join(set_clauses))
    if remove_clauses:
        parts.append("REMOVE " + ", ".join(remove_clauses))
    if add_clauses:
        parts.append("ADD " + ", ".join(add_clauses))
    if delete_clauses:
        parts.append("DELETE " + ", ".join(delete_clauses))

    if not parts:
        raise StoreError("Update expression is empty")
    return " ".join(parts)


def _to_dynamo(value: Any) -> Any:
    """Prepare a Python value for TypeSerializer (floats become Decimal)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {_to_dynamo(v) for v in value}
    return value


def _from_dynamo(value: Any) -> Any:
    """Convert TypeDeserializer output back to plain Python values."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    if isinstance(value, set):
        return {_from_dynamo(v) for v in value}
    return value


class DynamoDocumentStore:
    """DynamoDB implementation of DocumentStore.

    Attributes:
        config: DynamoConfig with region, endpoint and table names

    Example:
        >>> store = DynamoDocumentStore(DynamoConfig(region="us-east-1"))
        >>> await store.connect()
        >>> await store.get("products", "p-1")
    """

    def __init__(self, config: Any) -> None:
        self.config = config
        self._tables: dict[str, str] = dict(config.table_names)
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()
        self._session = None
        self._client_ctx = None
        self._client = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Create the DynamoDB client.

        Raises:
            StoreUnavailableError: If the client cannot be created
        """
        if self._client is not None:
            return

        self._session = get_session()
        client_kwargs: dict[str, Any] = {"region_name": self.config.region}
        if self.config.endpoint_url:
            client_kwargs["endpoint_url"] = self.config.endpoint_url

        try:
            self._client_ctx = self._session.create_client("dynamodb", **client_kwargs)
            self._client = await self._client_ctx.__aenter__()
        except EndpointConnectionError as e:
            raise StoreUnavailableError(f"Failed to connect to DynamoDB: {e}") from e

        logger.info(
            "Connected to DynamoDB",
            extra={
                "region": self.config.region,
                "endpoint": self.config.endpoint_url or "AWS",
                "tables": self._tables,
            },
        )

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")
        self._client = None
        self._client_ctx = None
        self._session = None

    async def get(self, table: str, item_id: str) -> dict[str, Any] | None:
        request = {
            "TableName": self._table(table),
            "Key": self._key(table, item_id),
            "ConsistentRead": True,
        }
        response = await self._call(table, item_id, "get_item", request)
        item = response.get("Item")
        return self._deserialize(item) if item else None

    async def put(
        self,
        table: str,
        item: dict[str, Any],
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        item_id = item.get(key_attribute(table), "")
        request: dict[str, Any] = {
            "TableName": self._table(table),
            "Item": self._serialize(item),
        }
        self._attach_condition(request, condition, ExpressionBuilder())
        await self._call(table, item_id, "put_item", request)
        return item

    async def update(
        self,
        table: str,
        item_id: str,
        update: Update,
        condition: Condition | None = None,
    ) -> dict[str, Any]:
        builder = ExpressionBuilder()
        request: dict[str, Any] = {
            "TableName": self._table(table),
            "Key": self._key(table, item_id),
            "UpdateExpression": render_update(update, builder),
            "ReturnValues": "ALL_NEW",
        }
        self._attach_condition(request, condition, builder)
        response = await self._call(table, item_id, "update_item", request)
        return self._deserialize(response.get("Attributes", {}))

    async def delete(
        self,
        table: str,
        item_id: str,
        condition: Condition | None = None,
    ) -> dict[str, Any] | None:
        request: dict[str, Any] = {
            "TableName": self._table(table),
            "Key": self._key(table, item_id),
            "ReturnValues": "ALL_OLD",
        }
        self._attach_condition(request, condition, ExpressionBuilder())
        response = await self._call(table, item_id, "delete_item", request)
        attributes = response.get("Attributes")
        return self._deserialize(attributes) if attributes else None

    async def scan(
        self,
        table: str,
        filter: Condition | None = None,
    ) -> list[dict[str, Any]]:
        request: dict[str, Any] = {"TableName": self._table(table)}
        if filter is not None:
            builder = ExpressionBuilder()
            request["FilterExpression"] = render_condition(filter, builder)
            request["ExpressionAttributeNames"] = builder.names
            if builder.values:
                request["ExpressionAttributeValues"] = self._serialize(builder.values)

        items: list[dict[str, Any]] = []
        pages = 0
        while True:
            response = await self._call(table, "*", "scan", request)
            items.extend(self._deserialize(raw) for raw in response.get("Items", []))
            pages += 1
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                break
            request["ExclusiveStartKey"] = last_key

        logger.debug(
            "Scan complete",
            extra={"table": table, "items": len(items), "pages": pages},
        )
        return items

    # Internals

    def _table(self, table: str) -> str:
        key_attribute(table)
        return self._tables[table]

    def _key(self, table: str, item_id: str) -> dict[str, Any]:
        return {key_attribute(table): {"S": item_id}}

    def _serialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {k: self._serializer.serialize(_to_dynamo(v)) for k, v in item.items()}

    def _deserialize(self, item: dict[str, Any]) -> dict[str, Any]:
        return {k: _from_dynamo(self._deserializer.deserialize(v)) for k, v in item.items()}

    def _attach_condition(
        self,
        request: dict[str, Any],
        condition: Condition | None,
        builder: ExpressionBuilder,
    ) -> None:
        if condition is not None:
            request["ConditionExpression"] = render_condition(condition, builder)
        if builder.names:
            request["ExpressionAttributeNames"] = builder.names
        if builder.values:
            request["ExpressionAttributeValues"] = self._serialize(builder.values)

    async def _call(self, table: str, item_id: str, operation: str, request: dict[str, Any]) -> Any:
        if self._client is None:
            raise StoreUnavailableError("DynamoDocumentStore is not connected")
        try:
            return await getattr(self._client, operation)(**request)
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ConditionalCheckFailedException":
                raise ConditionFailedError(table, item_id) from e
            if error_code in _TRANSIENT_CODES:
                raise StoreUnavailableError(f"DynamoDB {error_code} on {table}") from e
            raise StoreError(f"DynamoDB error on {table}: {e}") from e
        except EndpointConnectionError as e:
            raise StoreUnavailableError(f"DynamoDB endpoint unreachable: {e}") from e
