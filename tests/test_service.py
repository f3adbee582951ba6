# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the fleet controller and its periodic tasks."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from platypus.config import PlatypusConfig
from platypus.data.models import ScalingDirection
from platypus.service import FleetController, run_periodic
from conftest import NOW, make_samples


@pytest.fixture()
def config(tmp_path) -> PlatypusConfig:
    return PlatypusConfig.model_validate(
        {
            "collector": {"retention_period": "1h", "buffer_size": 5, "batch_size": 2},
            "analyzer": {"min_data_points": 5},
            "ecotags": {"min_data_points": 5},
            "ml_predictor": {"min_data_points": 5, "model_path": str(tmp_path / "models")},
        }
    )


@pytest.fixture()
def controller(config, provider, clock) -> FleetController:
    return FleetController(config, provider=provider, clock=clock)


class TestRunPeriodic:
    async def test_ticks_until_stopped(self):
        stop = asyncio.Event()
        ticks = []

        async def tick():
            ticks.append(1)
            if len(ticks) == 3:
                stop.set()

        await asyncio.wait_for(run_periodic("test", timedelta(milliseconds=5), tick, stop), timeout=2)
        assert len(ticks) == 3

    async def test_failing_tick_does_not_end_loop(self):
        stop = asyncio.Event()
        calls = []

        async def tick():
            calls.append(1)
            if len(calls) >= 3:
                stop.set()
            raise RuntimeError("boom")

        await asyncio.wait_for(run_periodic("test", timedelta(milliseconds=5), tick, stop), timeout=2)
        assert len(calls) == 3

    async def test_stop_interrupts_wait(self):
        stop = asyncio.Event()
        ticks = []

        async def tick():
            ticks.append(1)

        task = asyncio.create_task(run_periodic("slow", timedelta(hours=1), tick, stop))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        assert ticks == []


class TestIngestionPaths:
    async def test_backfill_flushes_when_buffer_fills(self, controller):
        samples = make_samples("s1", 12)
        loaded = await controller.backfill({"s1": samples}, region={"s1": "eu-west-1"})
        assert loaded == 12
        assert await controller.store.query("s1") == samples

    async def test_poll_resumes_after_last_accepted(self, controller, provider):
        provider.add_server("s1")
        provider.samples["s1"] = make_samples("s1", 8, step=timedelta(seconds=5))

        # buffer holds five batches
        assert await controller.poll_metrics() == 5
        await controller.store.flush()
        assert await controller.poll_metrics() == 3
        await controller.store.flush()
        assert len(await controller.store.query("s1")) == 8
        assert await controller.poll_metrics() == 0

    async def test_poll_inventory_failure(self, controller, provider):
        provider.fail_inventory = True
        assert await controller.poll_metrics() == 0


class TestRunOnce:
    async def test_pipeline(self, controller, provider):
        provider.add_server("hot")
        provider.add_server("good")
        provider.add_container("c1", "hot", service="api")
        await controller.backfill(
            {"hot": make_samples("hot", 10, cpu=90.0), "good": make_samples("good", 10, cpu=70.0)}
        )

        actions, outcomes = await controller.run_once()

        assert [a.direction for a in actions] == [ScalingDirection.up]
        assert provider.relocations == [("c1", "hot", "good")]
        assert outcomes == []
        assert [p.service_name for p in await controller.classifier.all_profiles()] == ["api"]
        assert len(controller.forecaster) == 2

    async def test_eviction_in_run_once(self, controller, provider, clock):
        await controller.backfill({"old": make_samples("old", 5, end=NOW - timedelta(hours=2))})
        await controller.run_once()
        assert await controller.store.query("old") == []


class TestLifecycle:
    async def test_start_status_stop(self, controller, config, provider):
        provider.add_server("s1")
        await controller.backfill({"s1": make_samples("s1", 10)})
        await controller.forecaster.update_models()

        await controller.start(poll=False)
        status = await controller.status()
        assert status.running
        assert set(status.tasks) == {"drain", "evict", "autoscale", "migrate", "classify", "forecast"}
        assert all(status.tasks.values())
        assert status.servers == 1

        await controller.stop(timeout=5)
        assert not controller.running
        assert (await controller.status()).tasks == {}
        # models persisted on shutdown
        assert [p.name for p in Path(config.ml_predictor.model_path).glob("*.json")] == ["s1.json"]

    async def test_double_start_rejected(self, controller):
        await controller.start(poll=False)
        try:
            with pytest.raises(RuntimeError):
                await controller.start()
        finally:
            await controller.stop(timeout=5)

    async def test_stop_without_start(self, controller):
        await controller.stop()
        assert not controller.running

    async def test_ingest_while_running_reaches_store(self, controller):
        await controller.start(poll=False)
        try:
            for sample in make_samples("s1", 4):
                controller.store.ingest("s1", sample)
            retained = []
            for _ in range(200):
                await asyncio.sleep(0.01)
                if "s1" in await controller.store.server_ids():
                    retained = await controller.store.query("s1")
                    if len(retained) == 4:
                        break
            assert len(retained) == 4
        finally:
            await controller.stop(timeout=5)
