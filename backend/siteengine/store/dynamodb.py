"""
DynamoDB key-value store implementation.

This module provides the production backend for the KeyValueStore protocol.
It uses aiobotocore for async calls and boto3's type (de)serializers to
convert between Python values and DynamoDB attribute values.

Invariants:
    - One table holds every record kind, keyed by (PK, SK)
    - TransactWriteItems is the only multi-item write path
    - Cancellation reasons are reported per item, in request order
    - Floats are stored as Decimal; integral numbers come back as int

How to change safely:
    - Test with DynamoDB Local or LocalStack before deploying to AWS
    - Keep the error mapping in sync with the in-memory backend
    - Respect the 100-item TransactWriteItems limit
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from aiobotocore.config import AioConfig
from aiobotocore.session import get_session
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from ..keys import PK, SK
from .base import (
    Condition,
    ConditionFailedError,
    ConditionKind,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactDelete,
    TransactItem,
    TransactPut,
    TransactionCanceledError,
    check_distinct_keys,
)

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo_value(value: Any) -> Any:
    """Replace floats with Decimal, which is all DynamoDB numbers accept."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_value(v) for v in value]
    return value


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, set)):
        return [_from_dynamo_value(v) for v in value]
    return value


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item into DynamoDB attribute values.

    None values are dropped, matching the document client's
    removeUndefinedValues behaviour.
    """
    clean = _to_dynamo_value({k: v for k, v in item.items() if v is not None})
    return {k: _serializer.serialize(v) for k, v in clean.items()}


def deserialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _from_dynamo_value(_deserializer.deserialize(v)) for k, v in item.items()}


def _key(pk: str, sk: str) -> Dict[str, Any]:
    return {PK: {"S": pk}, SK: {"S": sk}}


def condition_expression(condition: Optional[Condition]) -> Dict[str, Any]:
    """Render a Condition as DynamoDB request parameters."""
    if condition is None:
        return {}
    if condition.kind == ConditionKind.ITEM_NOT_EXISTS:
        return {"ConditionExpression": f"attribute_not_exists({SK})"}
    if condition.kind == ConditionKind.ITEM_EXISTS:
        return {"ConditionExpression": f"attribute_exists({SK})"}
    return {
        "ConditionExpression": "#cond_attr = :cond_value",
        "ExpressionAttributeNames": {"#cond_attr": condition.attribute},
        "ExpressionAttributeValues": {
            ":cond_value": _serializer.serialize(_to_dynamo_value(condition.value))
        },
    }


class DynamoDbKeyValueStore:
    """DynamoDB implementation of KeyValueStore protocol.

    Attributes:
        config: DynamoDbConfig instance
        max_transaction_items: Upper bound on items per transaction

    Example:
        >>> config = DynamoDbConfig(table_name="site-engine", region="eu-central-1")
        >>> store = DynamoDbKeyValueStore(config)
        >>> await store.connect()
        >>> await store.get("TENANT#t1", "ROUTE#/")
    """

    def __init__(self, config: Any) -> None:
        self.config = config
        self.max_transaction_items = config.max_transaction_items
        self._session = None
        self._client_ctx = None
        self._client = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to DynamoDB."""
        return self._connected

    async def connect(self) -> None:
        """Create the client and verify the table exists.

        Raises:
            StoreConnectionError: If connection fails
        """
        if self._connected:
            return

        try:
            self._session = get_session()
            client_config = {
                "region_name": self.config.region,
                "config": AioConfig(
                    connect_timeout=self.config.connect_timeout,
                    read_timeout=self.config.read_timeout,
                    retries={"max_attempts": self.config.max_attempts, "mode": "standard"},
                ),
            }
            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url

            self._client_ctx = self._session.create_client("dynamodb", **client_config)
            self._client = await self._client_ctx.__aenter__()

            await self._client.describe_table(TableName=self.config.table_name)

            self._connected = True
            logger.info(
                "Connected to DynamoDB",
                extra={
                    "table": self.config.table_name,
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except EndpointConnectionError as e:
            raise StoreConnectionError(f"Failed to connect to DynamoDB endpoint: {e}") from e
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            if error_code == "ResourceNotFoundException":
                raise StoreConnectionError(
                    f"DynamoDB table '{self.config.table_name}' not found"
                ) from e
            raise StoreConnectionError(f"DynamoDB error: {e}") from e

    async def close(self) -> None:
        """Close the DynamoDB client."""
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
        self._connected = False
        logger.info("DynamoDB connection closed")

    def _require_client(self) -> Any:
        if self._client is None:
            raise StoreConnectionError("Not connected to DynamoDB")
        return self._client

    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        client = self._require_client()
        try:
            response = await client.get_item(
                TableName=self.config.table_name,
                Key=_key(pk, sk),
                ConsistentRead=True,
            )
        except Exception as e:
            raise self._translate(e, "GetItem") from e

        item = response.get("Item")
        return deserialize_item(item) if item else None

    async def query(
        self,
        pk: str,
        sk_prefix: str,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        client = self._require_client()
        params: Dict[str, Any] = {
            "TableName": self.config.table_name,
            "KeyConditionExpression": "#pk = :pk AND begins_with(#sk, :sk)",
            "ExpressionAttributeNames": {"#pk": PK, "#sk": SK},
            "ExpressionAttributeValues": {":pk": {"S": pk}, ":sk": {"S": sk_prefix}},
            "ScanIndexForward": ascending,
            "ConsistentRead": True,
        }

        items: List[Dict[str, Any]] = []
        try:
            while True:
                if limit is not None:
                    params["Limit"] = limit - len(items)
                response = await client.query(**params)
                items.extend(deserialize_item(i) for i in response.get("Items", []))

                last_key = response.get("LastEvaluatedKey")
                if not last_key or (limit is not None and len(items) >= limit):
                    break
                params["ExclusiveStartKey"] = last_key
        except Exception as e:
            raise self._translate(e, "Query") from e

        return items

    async def put(self, item: Dict[str, Any], condition: Optional[Condition] = None) -> None:
        client = self._require_client()
        try:
            await client.put_item(
                TableName=self.config.table_name,
                Item=serialize_item(item),
                **condition_expression(condition),
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ConditionFailedError(item[PK], item[SK]) from e
            raise self._translate(e, "PutItem") from e
        except Exception as e:
            raise self._translate(e, "PutItem") from e

    async def delete(self, pk: str, sk: str, condition: Optional[Condition] = None) -> None:
        client = self._require_client()
        try:
            await client.delete_item(
                TableName=self.config.table_name,
                Key=_key(pk, sk),
                **condition_expression(condition),
            )
        except ClientError as e:
            if _error_code(e) == "ConditionalCheckFailedException":
                raise ConditionFailedError(pk, sk) from e
            raise self._translate(e, "DeleteItem") from e
        except Exception as e:
            raise self._translate(e, "DeleteItem") from e

    async def transact_write(self, items: Sequence[TransactItem]) -> None:
        client = self._require_client()
        if not items:
            return
        if len(items) > self.max_transaction_items:
            raise StoreError(
                f"Transaction has {len(items)} items, limit is {self.max_transaction_items}"
            )
        check_distinct_keys(items)

        try:
            request = [self._transact_entry(item) for item in items]
            await client.transact_write_items(TransactItems=request)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                reasons = [
                    _reason_code(r) for r in e.response.get("CancellationReasons", [])
                ]
                logger.debug(
                    "DynamoDB transaction cancelled",
                    extra={"table": self.config.table_name, "reasons": reasons},
                )
                raise TransactionCanceledError(reasons) from e
            raise self._translate(e, "TransactWriteItems") from e
        except Exception as e:
            raise self._translate(e, "TransactWriteItems") from e

    def _transact_entry(self, item: TransactItem) -> Dict[str, Any]:
        if isinstance(item, TransactPut):
            return {
                "Put": {
                    "TableName": self.config.table_name,
                    "Item": serialize_item(item.item),
                    **condition_expression(item.condition),
                }
            }
        if isinstance(item, TransactDelete):
            return {
                "Delete": {
                    "TableName": self.config.table_name,
                    "Key": _key(item.pk, item.sk),
                    **condition_expression(item.condition),
                }
            }
        raise StoreError(f"Unsupported transaction item: {item!r}")

    def _translate(self, error: Exception, operation: str) -> StoreError:
        """Map a botocore failure onto the store error hierarchy."""
        if isinstance(error, StoreError):
            return error
        if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
            return StoreTimeoutError(f"DynamoDB {operation} timed out: {error}")
        if isinstance(error, EndpointConnectionError):
            return StoreConnectionError(f"DynamoDB {operation} could not connect: {error}")
        if isinstance(error, ClientError):
            code = _error_code(error)
            if code in ("ProvisionedThroughputExceededException", "ThrottlingException"):
                return StoreTimeoutError(f"DynamoDB {operation} throttled: {error}")
            return StoreError(f"DynamoDB {operation} failed ({code}): {error}")
        return StoreError(f"DynamoDB {operation} failed: {error}")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _reason_code(reason: Dict[str, Any]) -> Optional[str]:
    code = reason.get("Code")
    if code in (None, "None"):
        return None
    return code
