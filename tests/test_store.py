"""
Document Store Tests
====================

Behavior of the in-memory store that the engine relies on.
"""

import asyncio

import pytest

from geocrowd.density import classify
from geocrowd.geo.planner import prefix_range
from geocrowd.models import DensityState
from geocrowd.store import (
    BatchLimitExceeded,
    DocumentNotFound,
    FieldUpdate,
    InMemoryDocumentStore,
    MutationKind,
    PreconditionFailed,
    StoreError,
)


class TestSingleDocument:
    """get/put/delete."""

    def test_put_and_get_copies(self, signal_store, make_signal, sf_point):
        async def scenario():
            signal = make_signal("s1", sf_point)
            await signal_store.put("s1", signal)
            first = await signal_store.get("s1")
            second = await signal_store.get("s1")
            return signal, first, second

        signal, first, second = asyncio.run(scenario())
        assert first == signal
        assert first is not second

    def test_get_missing(self, signal_store):
        assert asyncio.run(signal_store.get("nope")) is None

    def test_delete_returns_document(self, signal_store, make_signal, sf_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            deleted = await signal_store.delete("s1")
            again = await signal_store.delete("s1")
            return deleted, again

        deleted, again = asyncio.run(scenario())
        assert deleted.id == "s1"
        assert again is None
        assert len(signal_store) == 0


class TestRangeQuery:
    """Lexicographic range scans."""

    def test_prefix_scan_sorted(self, signal_store, make_signal, sf_point, nyc_point):
        async def scenario():
            await signal_store.put("b", make_signal("b", sf_point))
            await signal_store.put("a", make_signal("a", sf_point))
            await signal_store.put("c", make_signal("c", nyc_point))
            return await signal_store.range_query("cell", *prefix_range("9q8"))

        docs = asyncio.run(scenario())
        assert [d.id for d in docs] == ["a", "b"]

    def test_injected_failure(self, signal_store):
        signal_store.fail_range_queries("9q8")
        with pytest.raises(StoreError):
            asyncio.run(signal_store.range_query("cell", *prefix_range("9q8")))

        signal_store.clear_faults()
        assert asyncio.run(signal_store.range_query("cell", *prefix_range("9q8"))) == []


def density_update(doc_id: str, people_count: int, **expected) -> FieldUpdate:
    return FieldUpdate(
        doc_id=doc_id,
        fields={"density": DensityState(people_count=people_count, tier=classify(people_count))},
        expected=expected,
    )


class TestBatchWrite:
    """Bounded, all-or-nothing field-level updates."""

    def test_updates_existing(self, signal_store, make_signal, sf_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            await signal_store.batch_write([density_update("s1", 7)])
            return await signal_store.get("s1")

        assert asyncio.run(scenario()).density.people_count == 7

    def test_keeps_fields_written_since_read(self, signal_store, make_signal, sf_point, nyc_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            await signal_store.put("s1", make_signal("s1", nyc_point))
            await signal_store.batch_write([density_update("s1", 4)])
            return await signal_store.get("s1")

        stored = asyncio.run(scenario())
        assert stored.location == nyc_point
        assert stored.cell.startswith("dr5")
        assert stored.density.people_count == 4

    def test_limit_exceeded(self):
        store = InMemoryDocumentStore(name="signals", max_batch_size=2)
        updates = [density_update(f"s{i}", 1) for i in range(3)]
        with pytest.raises(BatchLimitExceeded):
            asyncio.run(store.batch_write(updates))

    def test_missing_target_applies_nothing(self, signal_store, make_signal, sf_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            with pytest.raises(DocumentNotFound):
                await signal_store.batch_write([density_update("s1", 9), density_update("gone", 9)])
            return await signal_store.get("s1")

        assert asyncio.run(scenario()).density.people_count == 1

    def test_precondition_failure_applies_nothing(self, signal_store, make_signal, sf_point, nyc_point):
        sf_cell = make_signal("s1", sf_point).cell

        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            await signal_store.put("s2", make_signal("s2", nyc_point))
            with pytest.raises(PreconditionFailed) as exc_info:
                await signal_store.batch_write([
                    density_update("s1", 5, cell=sf_cell),
                    density_update("s2", 5, cell=sf_cell),
                ])
            return exc_info.value, await signal_store.get("s1")

        error, stored = asyncio.run(scenario())
        assert error.doc_id == "s2"
        assert error.field_name == "cell"
        assert stored.density.people_count == 1
        assert signal_store.metrics()["failed_batches"] == 1

    def test_unknown_field_rejected(self, signal_store, make_signal, sf_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            await signal_store.batch_write([FieldUpdate(doc_id="s1", fields={"crowd": 3})])

        with pytest.raises(StoreError):
            asyncio.run(scenario())

    def test_injected_batch_failure(self, signal_store, make_signal, sf_point):
        async def scenario():
            await signal_store.put("s1", make_signal("s1", sf_point))
            signal_store.fail_next_batches(1)
            with pytest.raises(StoreError):
                await signal_store.batch_write([density_update("s1", 3)])
            await signal_store.batch_write([density_update("s1", 4)])
            return await signal_store.get("s1")

        assert asyncio.run(scenario()).density.people_count == 4
        assert signal_store.metrics()["failed_batches"] == 1

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            InMemoryDocumentStore(max_batch_size=0)


class TestListener:
    """Mutation notifications."""

    def test_create_and_delete_notified(self, signal_store, make_signal, sf_point):
        received = []

        async def listener(kind, entity):
            received.append((kind, entity.id))

        async def scenario():
            signal_store.set_listener(listener)
            await signal_store.put("s1", make_signal("s1", sf_point))
            await signal_store.put("s1", make_signal("s1", sf_point, people_count=2))
            await signal_store.batch_write([density_update("s1", 3)])
            await signal_store.delete("s1")

        asyncio.run(scenario())
        assert received == [(MutationKind.CREATE, "s1"), (MutationKind.DELETE, "s1")]
