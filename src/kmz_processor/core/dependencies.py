"""FastAPI dependency injection for database sessions and the processing queue."""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from kmz_processor.core.config import get_settings
from kmz_processor.core.database import get_session_factory
from kmz_processor.core.queue import JobQueue


async def get_async_session() -> AsyncGenerator[AsyncSession]:
    """Yield an async database session with per-request lifecycle."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


def get_job_queue() -> JobQueue:
    """Return the processing queue bound to the application session factory."""
    settings = get_settings()
    return JobQueue(get_session_factory(), name=settings.queue_name)
