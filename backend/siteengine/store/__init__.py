"""
Key-value store abstraction for the site engine.

This module provides a pluggable store backend interface supporting:
- AWS DynamoDB (production)
- In-memory (for testing)

The store is partitioned by (PK, SK) and offers no foreign keys, joins or
triggers; every relational guarantee the engine needs is built from point
reads, prefix queries, conditional writes and atomic transactions.

Invariants:
    - transact_write() applies all items or none
    - Conditions are evaluated against the state at commit time
    - Failed conditions are reported per item

How to change safely:
    - New backends must implement the KeyValueStore protocol
    - Run the store contract tests against every backend
"""

from .base import (
    CONDITIONAL_CHECK_FAILED,
    Condition,
    ConditionFailedError,
    ConditionKind,
    KeyValueStore,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactDelete,
    TransactItem,
    TransactPut,
    TransactionCanceledError,
    create_store,
)
from .dynamodb import DynamoDbKeyValueStore
from .memory import InMemoryKeyValueStore

__all__ = [
    # Protocol and types
    "KeyValueStore",
    "Condition",
    "ConditionKind",
    "TransactPut",
    "TransactDelete",
    "TransactItem",
    "CONDITIONAL_CHECK_FAILED",
    "StoreError",
    "StoreConnectionError",
    "StoreTimeoutError",
    "ConditionFailedError",
    "TransactionCanceledError",
    # Factory
    "create_store",
    # Implementations
    "DynamoDbKeyValueStore",
    "InMemoryKeyValueStore",
]
