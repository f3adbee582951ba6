# Copyright (c) 2025 Keshav
# Licensed under the GNU Affero General Public License v3.0
# See LICENSE file for details.
"""Tests for the REST API."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from platypus import __version__
from platypus.api.server import create_app
from platypus.config import PlatypusConfig
from platypus.service import FleetController
from conftest import NOW, fill, make_samples

KEY = {"X-API-Key": "test-key"}


@pytest.fixture()
def controller(provider, clock) -> FleetController:
    config = PlatypusConfig.model_validate(
        {
            "collector": {"buffer_size": 50},
            "analyzer": {"min_data_points": 5},
            "api": {"api_keys": ["test-key"]},
        }
    )
    return FleetController(config, provider=provider, clock=clock)


@pytest.fixture()
async def client(controller):
    app = create_app(controller)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


class TestAuth:
    async def test_health_is_open(self, client):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "version": __version__}

    async def test_missing_key(self, client):
        resp = await client.get("/api/v1/plans")
        assert resp.status_code == 401

    async def test_unknown_key(self, client):
        resp = await client.get("/api/v1/plans", headers={"X-API-Key": "nope"})
        assert resp.status_code == 401

    async def test_any_key_when_none_configured(self, controller):
        controller.config.api.api_keys = []
        app = create_app(controller)
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
            assert (await c.get("/api/v1/plans", headers={"X-API-Key": "anything"})).status_code == 200
            assert (await c.get("/api/v1/plans", headers={"X-API-Key": ""})).status_code == 401


class TestMetrics:
    async def test_post_then_query(self, client, controller):
        body = {"server_id": "srv-1", "cpu_usage": 55.0, "power_usage": 210.0, "region": "eu-west-1"}
        resp = await client.post("/api/v1/metrics", json=body, headers=KEY)
        assert resp.status_code == 201
        assert resp.json()["pending_batches"] == 1

        await controller.store.flush()
        resp = await client.get("/api/v1/metrics", params={"server_id": "srv-1"}, headers=KEY)
        assert resp.status_code == 200
        [sample] = resp.json()["samples"]
        assert sample["power_usage"] == 210.0

    async def test_naive_timestamp_does_not_break_eviction(self, client, controller):
        body = {
            "server_id": "srv-1",
            "timestamp": "2025-03-03T09:00:00",
            "cpu_usage": 55.0,
            "power_usage": 210.0,
        }
        resp = await client.post("/api/v1/metrics", json=body, headers=KEY)
        assert resp.status_code == 201

        await controller.store.flush()
        assert await controller.store.evict(NOW + timedelta(days=30)) == 1
        assert await controller.store.query("srv-1") == []

    async def test_invalid_body(self, client):
        body = {"server_id": "srv-1", "cpu_usage": 150.0, "power_usage": 10.0}
        resp = await client.post("/api/v1/metrics", json=body, headers=KEY)
        assert resp.status_code == 422

    async def test_full_buffer(self, provider, clock):
        config = PlatypusConfig.model_validate(
            {"collector": {"buffer_size": 2}, "api": {"api_keys": ["test-key"]}}
        )
        app = create_app(FleetController(config, provider=provider, clock=clock))
        body = {"server_id": "srv-1", "cpu_usage": 10.0, "power_usage": 10.0}
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
            codes = [
                (await c.post("/api/v1/metrics", json=body, headers=KEY)).status_code
                for _ in range(3)
            ]
        assert codes == [201, 201, 503]

    async def test_unknown_server(self, client):
        resp = await client.get("/api/v1/metrics", params={"server_id": "ghost"}, headers=KEY)
        assert resp.status_code == 404

    async def test_prometheus(self, client, controller):
        await fill(controller.store, make_samples("srv-1", 1), region="eu-west-1")
        resp = await client.get("/api/v1/prometheus", headers=KEY)
        assert resp.status_code == 200
        assert 'server_id="srv-1"' in resp.text


class TestFleet:
    async def test_servers(self, client, provider):
        provider.add_server("srv-1")
        resp = await client.get("/api/v1/servers", headers=KEY)
        assert [s["id"] for s in resp.json()] == ["srv-1"]

    async def test_servers_inventory_failure(self, client, provider):
        provider.fail_inventory = True
        resp = await client.get("/api/v1/servers", headers=KEY)
        assert resp.status_code == 502

    async def test_server_detail(self, client, controller, provider):
        provider.add_server("srv-1")
        await fill(controller.store, make_samples("srv-1", 10))
        resp = await client.get("/api/v1/servers/srv-1", headers=KEY)
        assert resp.status_code == 200
        data = resp.json()
        assert data["server"]["id"] == "srv-1"
        assert data["snapshot"]["sample_count"] == 10

    async def test_server_detail_insufficient_data(self, client, controller, provider):
        provider.add_server("srv-1")
        await fill(controller.store, make_samples("srv-1", 2))
        resp = await client.get("/api/v1/servers/srv-1", headers=KEY)
        assert resp.status_code == 422

    async def test_server_detail_unknown(self, client):
        resp = await client.get("/api/v1/servers/ghost", headers=KEY)
        assert resp.status_code == 404

    async def test_eco_score(self, client, controller):
        await fill(controller.store, make_samples("srv-1", 10, cpu=70.0, power=100.0))
        resp = await client.post("/api/v1/eco-score", json={"server_id": "srv-1"}, headers=KEY)
        assert resp.json()["eco_score"] == pytest.approx(96.0)

        resp = await client.post("/api/v1/eco-score", json={"server_id": "ghost"}, headers=KEY)
        assert resp.json()["eco_score"] == 0.0

    async def test_forecast_without_model(self, client):
        resp = await client.get("/api/v1/forecast/srv-1", headers=KEY)
        assert resp.status_code == 404


class TestTagsAndStatus:
    async def test_eco_tags_empty(self, client):
        resp = await client.get("/api/v1/eco-tags", headers=KEY)
        assert resp.json() == []

    async def test_unknown_service(self, client):
        resp = await client.get("/api/v1/eco-tags/web", headers=KEY)
        assert resp.status_code == 404

    async def test_profile_after_update(self, client, controller, provider):
        provider.add_server("srv-1")
        provider.add_container("web-1", "srv-1", service="web")
        await fill(controller.store, make_samples("srv-1", 12))
        await controller.classifier.update_profiles()
        # classifier min_data_points defaults to 10
        resp = await client.get("/api/v1/eco-tags/web", headers=KEY)
        assert resp.status_code == 200
        assert "eco-efficient" in resp.json()["tags"]

    async def test_status(self, client):
        resp = await client.get("/api/v1/status", headers=KEY)
        assert resp.status_code == 200
        assert resp.json()["running"] is False
