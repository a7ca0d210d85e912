"""
Base protocol and types for the key-value store abstraction.

This module defines the KeyValueStore protocol that all backends must implement,
along with common types for conditions, transactional items, and errors.

Invariants:
    - Items are addressed by (PK, SK); SK ordering is lexicographic
    - A transaction applies all of its items or none of them
    - A transaction may not touch the same key twice
    - A failed condition is reported per item so callers can tell a
      uniqueness violation apart from an unavailable store

How to change safely:
    - Protocol changes require updating all implementations
    - Add new condition kinds to every backend at once
    - Keep error types stable; the core maps them to caller-facing errors
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
    TYPE_CHECKING,
)
import logging

from ..keys import PK, SK

if TYPE_CHECKING:
    from ..config import ServerConfig

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailed"


class StoreError(Exception):
    """Base exception for store operations."""
    pass


class StoreConnectionError(StoreError):
    """Connection to the store backend failed."""
    pass


class StoreTimeoutError(StoreError):
    """Store operation timed out."""
    pass


class ConditionFailedError(StoreError):
    """A single-item conditional write found its condition false."""

    def __init__(self, pk: str, sk: str, message: Optional[str] = None) -> None:
        self.pk = pk
        self.sk = sk
        super().__init__(message or f"Condition failed for {pk}/{sk}")


class TransactionCanceledError(StoreError):
    """A transactional write was rolled back.

    Attributes:
        reasons: One entry per transaction item, in order. None means the
            item itself was fine; CONDITIONAL_CHECK_FAILED means its
            condition was false; other strings are backend reason codes.
    """

    def __init__(self, reasons: Sequence[Optional[str]], message: Optional[str] = None) -> None:
        self.reasons = list(reasons)
        super().__init__(message or f"Transaction cancelled, reasons: {self.reasons}")

    @property
    def condition_failed(self) -> bool:
        """Whether any item's condition caused the cancellation."""
        return CONDITIONAL_CHECK_FAILED in self.reasons

    def failed_indexes(self) -> List[int]:
        """Indexes of the items whose condition failed."""
        return [i for i, r in enumerate(self.reasons) if r == CONDITIONAL_CHECK_FAILED]


class ConditionKind(Enum):
    """Supported write conditions."""

    ITEM_NOT_EXISTS = "item_not_exists"
    ITEM_EXISTS = "item_exists"
    ATTRIBUTE_EQUALS = "attribute_equals"


@dataclass(frozen=True)
class Condition:
    """Existence or equality predicate attached to a write.

    Example:
        >>> await store.put(item, condition=Condition.item_not_exists())
        >>> Condition.attribute_equals("version", 3)
    """

    kind: ConditionKind
    attribute: Optional[str] = None
    value: Any = None

    @classmethod
    def item_not_exists(cls) -> Condition:
        return cls(ConditionKind.ITEM_NOT_EXISTS)

    @classmethod
    def item_exists(cls) -> Condition:
        return cls(ConditionKind.ITEM_EXISTS)

    @classmethod
    def attribute_equals(cls, attribute: str, value: Any) -> Condition:
        return cls(ConditionKind.ATTRIBUTE_EQUALS, attribute=attribute, value=value)

    def evaluate(self, current: Optional[Dict[str, Any]]) -> bool:
        """Evaluate against the currently stored item (None if absent)."""
        if self.kind == ConditionKind.ITEM_NOT_EXISTS:
            return current is None
        if self.kind == ConditionKind.ITEM_EXISTS:
            return current is not None
        if current is None:
            return False
        return current.get(self.attribute) == self.value


@dataclass(frozen=True)
class TransactPut:
    """Put an item as part of a transaction."""

    item: Dict[str, Any]
    condition: Optional[Condition] = None

    @property
    def key(self) -> tuple[str, str]:
        return self.item[PK], self.item[SK]


@dataclass(frozen=True)
class TransactDelete:
    """Delete an item as part of a transaction."""

    pk: str
    sk: str
    condition: Optional[Condition] = None

    @property
    def key(self) -> tuple[str, str]:
        return self.pk, self.sk


TransactItem = Union[TransactPut, TransactDelete]


def check_distinct_keys(items: Sequence[TransactItem]) -> None:
    """Reject transactions that touch one key more than once.

    Raises:
        StoreError: If two items share a key
    """
    seen: set[tuple[str, str]] = set()
    for item in items:
        if item.key in seen:
            raise StoreError(
                f"Transaction touches {item.key[0]}/{item.key[1]} more than once"
            )
        seen.add(item.key)


@runtime_checkable
class KeyValueStore(Protocol):
    """Protocol for partitioned key-value store backends.

    This defines the interface that all store backends must implement.
    The protocol ensures:
    - Point reads and ordered prefix queries within one partition
    - Single-item writes with optional conditions
    - Atomic multi-item writes with per-item conditions

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.connect()
        >>> await store.transact_write([
        ...     TransactPut({"PK": "TENANT#t1", "SK": "ROUTE#/a"}, Condition.item_not_exists()),
        ... ])
    """

    max_transaction_items: int

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the store backend.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @abstractmethod
    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        """Fetch one item, or None if it does not exist."""
        ...

    @abstractmethod
    async def query(
        self,
        pk: str,
        sk_prefix: str,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch items in a partition whose sort key starts with a prefix.

        Args:
            pk: Partition key
            sk_prefix: Sort key prefix
            ascending: Sort key order
            limit: Maximum items to return (all if None)

        Returns:
            Items ordered by sort key
        """
        ...

    @abstractmethod
    async def put(self, item: Dict[str, Any], condition: Optional[Condition] = None) -> None:
        """Write one item, replacing any existing item with the same key.

        Raises:
            ConditionFailedError: If the condition is false
        """
        ...

    @abstractmethod
    async def delete(self, pk: str, sk: str, condition: Optional[Condition] = None) -> None:
        """Delete one item. Deleting a missing item is a no-op.

        Raises:
            ConditionFailedError: If the condition is false
        """
        ...

    @abstractmethod
    async def transact_write(self, items: Sequence[TransactItem]) -> None:
        """Apply all items atomically.

        Args:
            items: Puts and deletes with optional conditions

        Raises:
            TransactionCanceledError: If any condition is false (nothing applied)
            StoreError: If the transaction is malformed or the backend fails
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_store(config: "ServerConfig") -> KeyValueStore:
    """Factory function to create a store from configuration.

    Args:
        config: Server configuration

    Returns:
        Appropriate KeyValueStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .dynamodb import DynamoDbKeyValueStore
    from .memory import InMemoryKeyValueStore

    if config.store_backend == StoreBackend.DYNAMODB:
        return DynamoDbKeyValueStore(config.dynamodb)
    elif config.store_backend == StoreBackend.MEMORY:
        return InMemoryKeyValueStore(
            max_transaction_items=config.dynamodb.max_transaction_items
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
