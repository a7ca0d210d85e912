"""
Unit tests for the in-memory key-value store.

Tests cover:
- Point reads and prefix queries
- Conditional puts and deletes
- Transaction atomicity and per-item cancellation reasons
- Transaction validation (size, duplicate keys)
- Failure injection
"""

import pytest

from backend.siteengine.store import (
    CONDITIONAL_CHECK_FAILED,
    Condition,
    ConditionFailedError,
    InMemoryKeyValueStore,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactDelete,
    TransactionCanceledError,
    TransactPut,
)


def item(sk, **attrs):
    return {"PK": "TENANT#t1", "SK": sk, **attrs}


class TestReads:
    """Tests for get and query."""

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store):
        """Missing item reads as None."""
        assert await store.get("TENANT#t1", "ROUTE#/nope") is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, store):
        """Mutating a returned item does not change the store."""
        await store.put(item("ROUTE#/a", tags=["x"]))

        fetched = await store.get("TENANT#t1", "ROUTE#/a")
        fetched["tags"].append("y")

        again = await store.get("TENANT#t1", "ROUTE#/a")
        assert again["tags"] == ["x"]

    @pytest.mark.asyncio
    async def test_query_prefix_ordered(self, store):
        """Query returns only matching sort keys, in order."""
        await store.put(item("ROUTE#/b"))
        await store.put(item("ROUTE#/a"))
        await store.put(item("CONTENT#n1#LATEST"))

        results = await store.query("TENANT#t1", "ROUTE#")
        assert [r["SK"] for r in results] == ["ROUTE#/a", "ROUTE#/b"]

    @pytest.mark.asyncio
    async def test_query_descending_with_limit(self, store):
        """Descending order and limit apply together."""
        for sk in ("ROUTE#/a", "ROUTE#/b", "ROUTE#/c"):
            await store.put(item(sk))

        results = await store.query("TENANT#t1", "ROUTE#", ascending=False, limit=2)
        assert [r["SK"] for r in results] == ["ROUTE#/c", "ROUTE#/b"]

    @pytest.mark.asyncio
    async def test_query_is_partition_scoped(self, store):
        """Other partitions are never returned."""
        await store.put({"PK": "TENANT#t2", "SK": "ROUTE#/a"})
        assert await store.query("TENANT#t1", "ROUTE#") == []


class TestConditionalWrites:
    """Tests for single-item conditions."""

    @pytest.mark.asyncio
    async def test_item_not_exists_blocks_overwrite(self, store):
        """item_not_exists fails when the key is taken."""
        await store.put(item("ROUTE#/a", owner="first"))

        with pytest.raises(ConditionFailedError):
            await store.put(item("ROUTE#/a", owner="second"), Condition.item_not_exists())

        assert (await store.get("TENANT#t1", "ROUTE#/a"))["owner"] == "first"

    @pytest.mark.asyncio
    async def test_attribute_equals(self, store):
        """attribute_equals compares against the stored value."""
        await store.put(item("CONTENT#n1#LATEST", version=1))

        await store.put(
            item("CONTENT#n1#LATEST", version=2), Condition.attribute_equals("version", 1)
        )
        with pytest.raises(ConditionFailedError):
            await store.put(
                item("CONTENT#n1#LATEST", version=3), Condition.attribute_equals("version", 1)
            )

    @pytest.mark.asyncio
    async def test_attribute_equals_on_missing_item_fails(self, store):
        """A value condition never holds for an absent item."""
        with pytest.raises(ConditionFailedError):
            await store.put(item("X#1"), Condition.attribute_equals("version", 1))

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store):
        """Unconditional delete of a missing item succeeds."""
        await store.delete("TENANT#t1", "CATPROD#c#p")
        assert store.item_count() == 0

    @pytest.mark.asyncio
    async def test_conditional_delete(self, store):
        """item_exists on delete fails for a missing item."""
        with pytest.raises(ConditionFailedError):
            await store.delete("TENANT#t1", "X#1", Condition.item_exists())


class TestTransactions:
    """Tests for transact_write."""

    @pytest.mark.asyncio
    async def test_all_items_applied(self, store):
        """A successful transaction applies puts and deletes."""
        await store.put(item("OLD#1"))

        await store.transact_write(
            [
                TransactPut(item("NEW#1")),
                TransactDelete("TENANT#t1", "OLD#1"),
            ]
        )

        assert await store.get("TENANT#t1", "NEW#1") is not None
        assert await store.get("TENANT#t1", "OLD#1") is None

    @pytest.mark.asyncio
    async def test_failed_condition_applies_nothing(self, store):
        """One false condition rolls back every item."""
        await store.put(item("ROUTE#/taken"))

        with pytest.raises(TransactionCanceledError) as exc_info:
            await store.transact_write(
                [
                    TransactPut(item("CONTENT#n1#LATEST")),
                    TransactPut(item("ROUTE#/taken"), Condition.item_not_exists()),
                ]
            )

        assert exc_info.value.reasons == [None, CONDITIONAL_CHECK_FAILED]
        assert exc_info.value.condition_failed
        assert exc_info.value.failed_indexes() == [1]
        assert await store.get("TENANT#t1", "CONTENT#n1#LATEST") is None

    @pytest.mark.asyncio
    async def test_duplicate_keys_rejected(self, store):
        """The same key may not appear twice in one transaction."""
        with pytest.raises(StoreError):
            await store.transact_write([TransactPut(item("A#1")), TransactDelete("TENANT#t1", "A#1")])

    @pytest.mark.asyncio
    async def test_size_limit(self):
        """Transactions larger than the limit are rejected."""
        small = InMemoryKeyValueStore(max_transaction_items=2)
        await small.connect()

        with pytest.raises(StoreError):
            await small.transact_write([TransactPut(item(f"A#{i}")) for i in range(3)])
        assert small.item_count() == 0

    @pytest.mark.asyncio
    async def test_empty_transaction_is_noop(self, store):
        """No items, no write."""
        await store.transact_write([])
        assert store.write_count == 0


class TestTestingHelpers:
    """Tests for failure injection and connection state."""

    @pytest.mark.asyncio
    async def test_not_connected(self):
        """Operations before connect() fail."""
        kv = InMemoryKeyValueStore()
        with pytest.raises(StoreConnectionError):
            await kv.get("TENANT#t1", "A#1")

    @pytest.mark.asyncio
    async def test_inject_failure_applies_once(self, store):
        """An injected failure is raised by the next operation only."""
        store.inject_failure(StoreTimeoutError("slow"))

        with pytest.raises(StoreTimeoutError):
            await store.get("TENANT#t1", "A#1")
        assert await store.get("TENANT#t1", "A#1") is None

    @pytest.mark.asyncio
    async def test_dump_by_partition(self, store):
        """dump() can be limited to one partition."""
        await store.put(item("A#1"))
        await store.put({"PK": "SYSTEM", "SK": "TENANT#t1"})

        assert [i["SK"] for i in store.dump("SYSTEM")] == ["TENANT#t1"]
        assert len(store.dump()) == 2
