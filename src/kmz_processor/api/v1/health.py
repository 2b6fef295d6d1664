"""Health endpoints.

GET /health (process liveness), GET /health/queue (queue counts).
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from kmz_processor.core.dependencies import get_job_queue
from kmz_processor.core.queue import JobQueue

router = APIRouter(tags=["health"])


@router.get("/health", status_code=200)
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "OK", "timestamp": datetime.now(UTC).isoformat()}


@router.get("/health/queue", status_code=200)
async def queue_health(
    queue: Annotated[JobQueue, Depends(get_job_queue)],
) -> dict:
    """Current number of queue entries per status."""
    return {"status": "OK", "queue": queue.name, "counts": await queue.get_counts()}
