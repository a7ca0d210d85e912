"""
In-memory key-value store implementation for testing.

This module provides a simple in-memory store backend for:
- Unit tests
- Integration tests
- Local development without external dependencies

Invariants:
    - All data is lost on process exit
    - Provides the same condition and transaction semantics as DynamoDB
    - Items are deep-copied on the way in and out, so callers never
      share mutable state with the store

How to change safely:
    - Keep interface compatible with KeyValueStore protocol
    - Mirror any DynamoDB semantic that the core relies on
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
from collections import defaultdict
from typing import Any, Dict, List, Optional, Sequence
import logging

from ..config import DEFAULT_MAX_TRANSACTION_ITEMS
from ..keys import PK, SK
from .base import (
    CONDITIONAL_CHECK_FAILED,
    Condition,
    ConditionFailedError,
    StoreConnectionError,
    StoreError,
    TransactDelete,
    TransactItem,
    TransactPut,
    TransactionCanceledError,
    check_distinct_keys,
)

logger = logging.getLogger(__name__)


class InMemoryKeyValueStore:
    """In-memory implementation of KeyValueStore for testing.

    Attributes:
        max_transaction_items: Upper bound on items per transaction

    Thread safety:
        Uses an asyncio lock for writes. Safe to use from
        multiple coroutines.

    Example:
        >>> store = InMemoryKeyValueStore()
        >>> await store.connect()
        >>> await store.put({"PK": "TENANT#t1", "SK": "ROUTE#/"})
        >>> await store.get("TENANT#t1", "ROUTE#/")
        {'PK': 'TENANT#t1', 'SK': 'ROUTE#/'}
    """

    def __init__(self, max_transaction_items: int = DEFAULT_MAX_TRANSACTION_ITEMS) -> None:
        self.max_transaction_items = max_transaction_items
        self._partitions: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._connected = False
        self._lock = asyncio.Lock()
        self._pending_failure: Optional[Exception] = None
        self.write_count = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryKeyValueStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._partitions.clear()
        logger.debug("InMemoryKeyValueStore closed")

    def _check(self) -> None:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        if self._pending_failure is not None:
            failure, self._pending_failure = self._pending_failure, None
            raise failure

    async def get(self, pk: str, sk: str) -> Optional[Dict[str, Any]]:
        self._check()
        item = self._partitions.get(pk, {}).get(sk)
        return copy.deepcopy(item) if item is not None else None

    async def query(
        self,
        pk: str,
        sk_prefix: str,
        ascending: bool = True,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self._check()
        partition = self._partitions.get(pk, {})
        keys = sorted((k for k in partition if k.startswith(sk_prefix)), reverse=not ascending)
        if limit is not None:
            keys = keys[:limit]
        return [copy.deepcopy(partition[k]) for k in keys]

    async def put(self, item: Dict[str, Any], condition: Optional[Condition] = None) -> None:
        self._check()
        pk, sk = item[PK], item[SK]
        async with self._lock:
            current = self._partitions.get(pk, {}).get(sk)
            if condition is not None and not condition.evaluate(current):
                raise ConditionFailedError(pk, sk)
            self._partitions[pk][sk] = copy.deepcopy(item)
            self.write_count += 1

    async def delete(self, pk: str, sk: str, condition: Optional[Condition] = None) -> None:
        self._check()
        async with self._lock:
            current = self._partitions.get(pk, {}).get(sk)
            if condition is not None and not condition.evaluate(current):
                raise ConditionFailedError(pk, sk)
            if current is not None:
                del self._partitions[pk][sk]
            self.write_count += 1

    async def transact_write(self, items: Sequence[TransactItem]) -> None:
        self._check()
        if not items:
            return
        if len(items) > self.max_transaction_items:
            raise StoreError(
                f"Transaction has {len(items)} items, limit is {self.max_transaction_items}"
            )
        check_distinct_keys(items)

        async with self._lock:
            # Evaluate every condition before touching anything
            reasons: List[Optional[str]] = []
            for item in items:
                pk, sk = item.key
                current = self._partitions.get(pk, {}).get(sk)
                ok = item.condition is None or item.condition.evaluate(current)
                reasons.append(None if ok else CONDITIONAL_CHECK_FAILED)

            if any(r is not None for r in reasons):
                logger.debug("In-memory transaction cancelled", extra={"reasons": reasons})
                raise TransactionCanceledError(reasons)

            for item in items:
                if isinstance(item, TransactPut):
                    self._partitions[item.item[PK]][item.item[SK]] = copy.deepcopy(item.item)
                elif isinstance(item, TransactDelete):
                    self._partitions.get(item.pk, {}).pop(item.sk, None)
            self.write_count += 1

    # Testing helpers

    def inject_failure(self, exception: Exception) -> None:
        """Make the next operation raise this exception."""
        self._pending_failure = exception

    def dump(self, pk: Optional[str] = None) -> List[Dict[str, Any]]:
        """Get all items, optionally for one partition (testing helper)."""
        partitions = [pk] if pk is not None else sorted(self._partitions)
        items: List[Dict[str, Any]] = []
        for p in partitions:
            part = self._partitions.get(p, {})
            items.extend(copy.deepcopy(part[k]) for k in sorted(part))
        return items

    def item_count(self) -> int:
        """Total number of stored items (testing helper)."""
        return sum(len(part) for part in self._partitions.values())
