# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the metric store: ingestion, backpressure, eviction, export."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from platypus.config import CollectorConfig
from platypus.data.models import Sample
from platypus.errors import BufferFullError, NotFoundError
from platypus.metrics.store import MetricStore
from conftest import NOW, FakeClock, fill, make_samples


class TestIngest:
    async def test_query_unknown_server(self, store: MetricStore):
        with pytest.raises(NotFoundError):
            await store.query("ghost")

    async def test_samples_not_visible_until_incorporated(self, store: MetricStore):
        sample = make_samples("srv-1", 1)[0]
        store.ingest("srv-1", sample)
        assert store.pending() == 1
        with pytest.raises(NotFoundError):
            await store.query("srv-1")
        assert await store.flush() == 1
        assert await store.query("srv-1") == [sample]

    async def test_arrival_order_preserved(self, store: MetricStore):
        samples = make_samples("srv-1", 20)
        await fill(store, samples)
        assert await store.query("srv-1") == samples

    async def test_query_returns_copy(self, store: MetricStore):
        await fill(store, make_samples("srv-1", 3))
        snapshot = await store.query("srv-1")
        snapshot.clear()
        assert len(await store.query("srv-1")) == 3

    async def test_mismatched_server_id_rejected(self, store: MetricStore):
        sample = make_samples("srv-2", 1)[0]
        with pytest.raises(ValueError, match="srv-2"):
            store.ingest("srv-1", sample)
        assert store.pending() == 0

    async def test_last_update_and_server_ids(self, store: MetricStore, clock: FakeClock):
        await fill(store, make_samples("srv-1", 2) + make_samples("srv-2", 2))
        assert sorted(await store.server_ids()) == ["srv-1", "srv-2"]
        assert await store.last_update("srv-1") == clock()


class TestBackpressure:
    async def test_full_buffer_rejects_without_blocking(self, clock: FakeClock):
        store = MetricStore(CollectorConfig(buffer_size=3), clock=clock)
        samples = make_samples("srv-1", 4)
        for sample in samples[:3]:
            store.ingest("srv-1", sample)

        with pytest.raises(BufferFullError):
            store.ingest("srv-1", samples[3])

        assert store.rejected == 1
        assert store.pending() == 3
        await store.flush()
        assert await store.query("srv-1") == samples[:3]

    async def test_accepts_again_after_drain(self, clock: FakeClock):
        store = MetricStore(CollectorConfig(buffer_size=1), clock=clock)
        first, second = make_samples("srv-1", 2)
        store.ingest("srv-1", first)
        with pytest.raises(BufferFullError):
            store.ingest("srv-1", second)
        await store.flush()
        store.ingest("srv-1", second)
        await store.flush()
        assert await store.query("srv-1") == [first, second]


class TestEviction:
    @pytest.mark.parametrize("retention_minutes", [1, 15, 45, 120])
    async def test_nothing_older_than_window_survives(self, clock: FakeClock, retention_minutes):
        store = MetricStore(
            CollectorConfig(retention_period=timedelta(minutes=retention_minutes)), clock=clock
        )
        await fill(store, make_samples("srv-1", 90) + make_samples("srv-2", 30, end=NOW - timedelta(minutes=20)))

        await store.evict(NOW)

        cutoff = NOW - timedelta(minutes=retention_minutes)
        for server_id in await store.server_ids():
            assert all(s.timestamp >= cutoff for s in await store.query(server_id))

    async def test_returns_dropped_count(self, store: MetricStore):
        # store retains one hour; 90 one-minute samples ending now
        await fill(store, make_samples("srv-1", 90))
        dropped = await store.evict(NOW)
        assert dropped == 29
        assert len(await store.query("srv-1")) == 61

    async def test_naive_timestamps_evicted_alongside_aware_ones(self, store: MetricStore):
        stale = Sample(
            server_id="srv-1",
            timestamp=(NOW - timedelta(hours=2)).replace(tzinfo=None),
            cpu_usage=10.0,
            power_usage=50.0,
        )
        store.ingest("srv-1", stale)
        await fill(store, make_samples("srv-1", 3) + make_samples("srv-2", 3, end=NOW - timedelta(hours=3)))

        assert await store.evict(NOW) == 4
        assert len(await store.query("srv-1")) == 3
        assert await store.query("srv-2") == []

    async def test_series_kept_when_emptied(self, store: MetricStore):
        await fill(store, make_samples("srv-1", 5, end=NOW - timedelta(hours=3)))
        await store.evict(NOW)
        assert await store.query("srv-1") == []


class TestDrainTask:
    async def test_drain_incorporates_and_stops(self, store: MetricStore):
        stop = asyncio.Event()
        task = asyncio.create_task(store.run_drain(stop))
        for sample in make_samples("srv-1", 10):
            store.ingest("srv-1", sample)

        retained = 0
        for _ in range(200):
            await asyncio.sleep(0.01)
            try:
                retained = len(await store.query("srv-1"))
            except NotFoundError:
                continue
            if retained == 10:
                break

        assert retained == 10
        assert store.pending() == 0
        stop.set()
        await asyncio.wait_for(task, timeout=2)


class TestPrometheus:
    async def test_gauges_exported_with_labels(self, store: MetricStore):
        await fill(store, make_samples("srv-1", 2, power=321.0), region="eu-west-1")
        text = store.export_prometheus().decode()
        assert "platypus_server_power_usage_watts" in text
        assert 'server_id="srv-1"' in text
        assert 'region="eu-west-1"' in text
        assert "321.0" in text
