"""
Density Tests
=============

Tier classification and cell-group aggregation.
"""

import asyncio
import logging

import pytest

from geocrowd.density import (
    BASE_TIER,
    DEEP_TIER,
    ELEVATED_TIER,
    DensityAggregationEngine,
    DensityTierClassifier,
    TierThresholds,
    chunked,
    classify,
)
from geocrowd.models import DensityTier, GeoPoint, TierLevel
from geocrowd.store import InMemoryDocumentStore


def crowd_points(origin: GeoPoint, count: int):
    """Points a few meters apart, all inside one 5-character group."""
    return [
        GeoPoint(latitude=origin.latitude + i * 1e-5, longitude=origin.longitude + i * 1e-5)
        for i in range(count)
    ]


async def seed_group(store, make_signal, origin, count, prefix="s"):
    for i, point in enumerate(crowd_points(origin, count)):
        await store.put(f"{prefix}{i}", make_signal(f"{prefix}{i}", point))


class TestClassifier:
    """Tests for DensityTierClassifier."""

    @pytest.mark.parametrize("count, level", [
        (0, TierLevel.BASE),
        (1, TierLevel.BASE),
        (9, TierLevel.BASE),
        (25, TierLevel.BASE),
        (26, TierLevel.ELEVATED),
        (50, TierLevel.ELEVATED),
        (51, TierLevel.DEEP),
        (10_000, TierLevel.DEEP),
    ])
    def test_boundaries(self, count, level):
        assert DensityTierClassifier().classify(count).level == level

    def test_tier_rendering(self):
        classifier = DensityTierClassifier()
        assert classifier.classify(1) == BASE_TIER
        assert classifier.classify(30) == ELEVATED_TIER
        assert classifier.classify(60) == DEEP_TIER
        assert DEEP_TIER.color_hex == "#8B0000"
        assert ELEVATED_TIER.radius_meters == 125
        assert BASE_TIER.color_hex == "#FFD700"

    def test_negative_count(self):
        with pytest.raises(ValueError):
            DensityTierClassifier().classify(-1)

    def test_state_for(self):
        state = DensityTierClassifier().state_for(30)
        assert state.people_count == 30
        assert state.tier.level == TierLevel.ELEVATED

    def test_custom_thresholds(self):
        calm = DensityTier(level=TierLevel.BASE, color_hex="#00FF00", radius_meters=50)
        classifier = DensityTierClassifier(TierThresholds(elevated_above=2, deep_above=4, base=calm))
        assert classifier.classify(2) == calm
        assert classifier.classify(3).level == TierLevel.ELEVATED
        assert classifier.classify(5).level == TierLevel.DEEP

    def test_invalid_thresholds(self):
        with pytest.raises(ValueError):
            DensityTierClassifier(TierThresholds(elevated_above=50, deep_above=50))

    def test_module_level_classify(self):
        assert classify(51).level == TierLevel.DEEP


class TestChunked:
    """Tests for chunked()."""

    def test_splits(self):
        assert list(chunked(list(range(7)), 3)) == [[0, 1, 2], [3, 4, 5], [6]]

    def test_empty(self):
        assert list(chunked([], 3)) == []

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            list(chunked([1], 0))


class TestRecompute:
    """Tests for recompute_cell_group()."""

    def test_converges_group(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 30)
            report = await engine.recompute_cell_group("9q8yyk")
            members = await engine.group_members("9q8yy")
            return report, members

        report, members = asyncio.run(scenario())
        assert report.prefix == "9q8yy"
        assert report.people_count == 30
        assert report.tier == TierLevel.ELEVATED
        assert report.updated == 30
        assert report.chunks == 1
        assert report.converged
        assert len(members) == 30
        for signal in members:
            assert signal.density.people_count == 30
            assert signal.density.tier == ELEVATED_TIER

    def test_idempotent(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 10)
            first = await engine.recompute_cell_group("9q8yy")
            second = await engine.recompute_cell_group("9q8yy")
            return first, second

        first, second = asyncio.run(scenario())
        assert first.updated == 10
        assert second.updated == 0
        assert second.chunks == 0
        assert second.unchanged == 10

    def test_chunks_respect_batch_limit(self, make_signal, sf_point):
        store = InMemoryDocumentStore(name="signals", max_batch_size=7)
        engine = DensityAggregationEngine(store, grouping_precision=5, batch_size=100)

        async def scenario():
            await seed_group(store, make_signal, sf_point, 30)
            return await engine.recompute_cell_group("9q8yy")

        report = asyncio.run(scenario())
        assert engine.batch_size == 7
        assert report.chunks == 5
        assert report.updated == 30
        assert store.metrics()["batches"] == 5

    def test_failed_chunk_logged_not_raised(self, make_signal, sf_point, caplog):
        store = InMemoryDocumentStore(name="signals", max_batch_size=7)
        engine = DensityAggregationEngine(store, grouping_precision=5)

        async def scenario():
            await seed_group(store, make_signal, sf_point, 30)
            store.fail_next_batches(1)
            report = await engine.recompute_cell_group("9q8yy")
            members = await engine.group_members("9q8yy")
            return report, members

        with caplog.at_level(logging.ERROR, logger="geocrowd.density.engine"):
            report, members = asyncio.run(scenario())

        assert report.failed_chunks == 1
        assert report.updated == 23
        assert not report.converged
        assert sum(1 for s in members if s.density.people_count == 30) == 23
        assert "Recompute chunk 0" in caplog.text

    def test_next_pass_heals(self, make_signal, sf_point):
        store = InMemoryDocumentStore(name="signals", max_batch_size=7)
        engine = DensityAggregationEngine(store, grouping_precision=5)

        async def scenario():
            await seed_group(store, make_signal, sf_point, 30)
            store.fail_next_batches(2)
            await engine.recompute_cell_group("9q8yy")
            healed = await engine.recompute_cell_group("9q8yy")
            members = await engine.group_members("9q8yy")
            return healed, members

        healed, members = asyncio.run(scenario())
        assert healed.updated == 14
        assert healed.converged
        assert all(s.density.people_count == 30 for s in members)

    def test_delete_shrinks_group(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 30)
            await engine.recompute_cell_group("9q8yy")
            for i in range(5):
                await signal_store.delete(f"s{i}")
            report = await engine.recompute_cell_group("9q8yy")
            members = await engine.group_members("9q8yy")
            return report, members

        report, members = asyncio.run(scenario())
        assert report.people_count == 25
        assert report.tier == TierLevel.BASE
        assert all(s.density.tier == BASE_TIER for s in members)

    def test_groups_are_independent(self, signal_store, engine, make_signal, sf_point, nyc_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 3, prefix="sf")
            await seed_group(signal_store, make_signal, nyc_point, 2, prefix="ny")
            await engine.recompute_cell_group("9q8yy")
            return await signal_store.get("ny0"), await signal_store.get("sf0")

        nyc, sf = asyncio.run(scenario())
        assert sf.density.people_count == 3
        assert nyc.density.people_count == 1

    def test_grouping_override(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 4)
            return await engine.recompute_cell_group("9q8yyk", precision_for_grouping=3)

        report = asyncio.run(scenario())
        assert report.prefix == "9q8"
        assert report.people_count == 4

    @pytest.mark.parametrize("precision", [0, -1])
    def test_grouping_override_rejects_non_positive(self, engine, precision):
        with pytest.raises(ValueError):
            asyncio.run(engine.recompute_cell_group("9q8yyk", precision_for_grouping=precision))
        assert engine.get_metrics()["passes"] == 0

    def test_empty_group(self, engine):
        report = asyncio.run(engine.recompute_cell_group("9q8yy"))
        assert report.people_count == 0
        assert report.chunks == 0

    def test_writes_only_density_fields(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 3)
            await engine.recompute_cell_group("9q8yy")
            return await signal_store.get("s0")

        stored = asyncio.run(scenario())
        assert stored.density.people_count == 3
        assert stored.location == crowd_points(sf_point, 1)[0]
        assert stored.user_id == "user-s0"

    def test_relocated_member_not_overwritten(self, make_signal, sf_point, nyc_point):
        # Moves s0 between the snapshot and the write of the same pass
        class RelocatingStore(InMemoryDocumentStore):
            async def batch_write(self, updates):
                moved = make_signal("s0", nyc_point)
                self._docs["s0"] = moved
                await super().batch_write(updates)

        store = RelocatingStore(name="signals")
        engine = DensityAggregationEngine(store, grouping_precision=5)

        async def scenario():
            await seed_group(store, make_signal, sf_point, 3)
            report = await engine.recompute_cell_group("9q8yy")
            return report, await store.get("s0"), await store.get("s1")

        report, moved, other = asyncio.run(scenario())
        assert report.failed_chunks == 1
        assert moved.cell.startswith("dr5")
        assert moved.density.people_count == 1
        assert other.density.people_count == 1


class TestInitialState:
    """Tests for initial_state()."""

    def test_first_signal(self, engine):
        state = asyncio.run(engine.initial_state("9q8yykxyz", "new"))
        assert state.people_count == 1
        assert state.tier == BASE_TIER

    def test_joins_existing_group(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 25)
            return await engine.initial_state(make_signal("x", sf_point).cell, "new")

        state = asyncio.run(scenario())
        assert state.people_count == 26
        assert state.tier.level == TierLevel.ELEVATED

    def test_excludes_own_id(self, signal_store, engine, make_signal, sf_point):
        async def scenario():
            await seed_group(signal_store, make_signal, sf_point, 3)
            return await engine.initial_state(make_signal("x", sf_point).cell, "s0")

        assert asyncio.run(scenario()).people_count == 3


class TestEngineConfig:
    """Constructor validation."""

    def test_group_prefix(self, engine):
        assert engine.group_prefix("9q8yykxyz") == "9q8yy"

    def test_invalid_grouping(self, signal_store):
        with pytest.raises(ValueError):
            DensityAggregationEngine(signal_store, grouping_precision=0)

    def test_invalid_batch_size(self, signal_store):
        with pytest.raises(ValueError):
            DensityAggregationEngine(signal_store, batch_size=0)
