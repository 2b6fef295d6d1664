"""Unit tests for the health endpoints."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from kmz_processor.api.v1.health import router
from kmz_processor.core.dependencies import get_job_queue


@pytest.fixture
def queue() -> MagicMock:
    queue = MagicMock()
    queue.name = "kmz-processing"
    queue.get_counts = AsyncMock(return_value={"waiting": 2, "active": 1, "completed": 7, "failed": 0})
    return queue


@pytest.fixture
def client(queue: MagicMock) -> AsyncClient:
    app = FastAPI()
    app.include_router(router, prefix="/api/v1")
    app.dependency_overrides[get_job_queue] = lambda: queue
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


class TestHealth:
    """Tests for GET /api/v1/health and GET /api/v1/health/queue."""

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "OK"
        assert "timestamp" in data

    @pytest.mark.asyncio
    async def test_queue_counts(self, client: AsyncClient) -> None:
        resp = await client.get("/api/v1/health/queue")

        assert resp.status_code == 200
        assert resp.json() == {
            "status": "OK",
            "queue": "kmz-processing",
            "counts": {"waiting": 2, "active": 1, "completed": 7, "failed": 0},
        }
