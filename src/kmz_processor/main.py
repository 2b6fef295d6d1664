"""FastAPI application factory.

Creates the FastAPI app with lifespan management, exception handlers,
and OpenAPI metadata.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from kmz_processor import __version__
from kmz_processor.core.config import get_settings
from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
from kmz_processor.core.logging import setup_logging
from kmz_processor.core.worker import stop_worker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifecycle: init engine on startup, dispose on shutdown."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, process_name="api")
    worker_slots = settings.worker_concurrency if settings.worker_in_process else 0
    init_engine(settings.database_url, echo=False, schema=settings.database_schema, worker_slots=worker_slots)

    # Optionally consume the processing queue inside the API process
    worker = None
    worker_task = None
    if settings.worker_in_process:
        from kmz_processor.services.processing_service import build_worker

        worker = build_worker(settings, get_session_factory())
        worker_task = asyncio.create_task(worker.run())

    yield

    if worker is not None and worker_task is not None:
        await stop_worker(worker, worker_task, settings.worker_shutdown_timeout)

    await dispose_engine()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="KMZ Processor",
        description="Queued KMZ ingestion into PostGIS with derived attributes and thumbnails",
        version=__version__,
        lifespan=lifespan,
    )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": str(exc)},
        )

    from kmz_processor.api.router import create_router, setup_middleware

    setup_middleware(app, settings)
    app.include_router(create_router(settings))

    return app
