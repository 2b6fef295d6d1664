"""Unit tests for the worker health endpoint."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import ASGITransport, AsyncClient

from kmz_processor.cli.worker_cmd import create_health_app
from kmz_processor.core.queue import QueueCountsCache


class TestWorkerHealth:
    """Tests for GET /health on the worker."""

    @pytest.mark.asyncio
    async def test_reports_cached_counts(self) -> None:
        queue = MagicMock()
        queue.get_counts = AsyncMock(return_value={"waiting": 0, "active": 2, "completed": 5, "failed": 1})
        counts = QueueCountsCache(queue, refresh_interval=5.0)
        await counts.refresh()

        client = AsyncClient(transport=ASGITransport(app=create_health_app(counts)), base_url="http://test")
        resp = await client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "OK"
        assert data["counts"]["active"] == 2
        assert data["counts_fresh"] is True

    @pytest.mark.asyncio
    async def test_ok_without_counts(self) -> None:
        counts = QueueCountsCache(MagicMock(), refresh_interval=5.0)

        client = AsyncClient(transport=ASGITransport(app=create_health_app(counts)), base_url="http://test")
        resp = await client.get("/health")

        assert resp.status_code == 200
        assert resp.json()["counts"] is None
        assert resp.json()["info"] == "queue unavailable"
