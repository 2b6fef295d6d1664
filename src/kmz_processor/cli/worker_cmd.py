"""Worker CLI command: consume the processing queue and serve a health endpoint."""

import asyncio

import typer
from fastapi import FastAPI
from loguru import logger

from kmz_processor.core.queue import QueueCountsCache
from kmz_processor.core.worker import stop_worker


def create_health_app(counts: QueueCountsCache) -> FastAPI:
    """Minimal app answering ``GET /health`` from cached queue counts."""
    health_app = FastAPI(title="KMZ Worker", docs_url=None, redoc_url=None, openapi_url=None)

    @health_app.get("/health")
    async def health() -> dict:
        return counts.snapshot()

    return health_app


def worker(
    concurrency: int | None = typer.Option(None, "--concurrency", help="Jobs processed at once"),
    port: int | None = typer.Option(None, "--port", help="Health endpoint port"),
    host: str = typer.Option("0.0.0.0", "--host", help="Health endpoint bind host"),  # noqa: S104
) -> None:
    """Run the KMZ processing worker until interrupted."""
    asyncio.run(_run_worker(concurrency, port, host))


async def _run_worker(concurrency: int | None, port: int | None, host: str) -> None:
    """Async implementation of the worker command."""
    import uvicorn

    from kmz_processor.core.config import get_settings
    from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
    from kmz_processor.core.logging import setup_logging
    from kmz_processor.services.processing_service import build_worker

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, process_name="worker")
    if concurrency is not None:
        settings.worker_concurrency = concurrency
    init_engine(settings.database_url, schema=settings.database_schema, worker_slots=settings.worker_concurrency)

    try:
        kmz_worker = build_worker(settings, get_session_factory())
        counts = QueueCountsCache(kmz_worker.queue, refresh_interval=settings.counts_refresh_interval)

        config = uvicorn.Config(
            create_health_app(counts),
            host=host,
            port=port or settings.worker_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        worker_task = asyncio.create_task(kmz_worker.run())
        counts_task = asyncio.create_task(counts.run())
        logger.info(f"Worker health endpoint listening on {config.port}")
        try:
            # Returns once uvicorn handles SIGINT/SIGTERM
            await server.serve()
        finally:
            counts_task.cancel()
            await stop_worker(kmz_worker, worker_task, settings.worker_shutdown_timeout)
            await asyncio.gather(counts_task, return_exceptions=True)
    finally:
        await dispose_engine()
