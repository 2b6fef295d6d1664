"""Processing queue CLI commands."""

import asyncio

import typer

queue_app = typer.Typer()


@queue_app.command("counts")
def counts() -> None:
    """Show the number of queue entries per status."""
    asyncio.run(_counts())


@queue_app.command("recover")
def recover(
    lock_timeout: int | None = typer.Option(None, "--lock-timeout", help="Seconds before a lease counts as stalled"),
) -> None:
    """Return stalled active entries to waiting."""
    asyncio.run(_recover(lock_timeout))


async def _counts() -> None:
    """Async implementation of counts."""
    from kmz_processor.core.config import get_settings
    from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
    from kmz_processor.core.queue import JobQueue

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        queue = JobQueue(get_session_factory(), name=settings.queue_name)
        status_counts = await queue.get_counts()
        typer.echo(f"Queue {queue.name}:")
        for status, count in status_counts.items():
            typer.echo(f"  {status:<10} {count}")
    finally:
        await dispose_engine()


async def _recover(lock_timeout: int | None) -> None:
    """Async implementation of recover."""
    from kmz_processor.core.config import get_settings
    from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
    from kmz_processor.core.queue import JobQueue

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        queue = JobQueue(get_session_factory(), name=settings.queue_name)
        recovered = await queue.recover_stalled(lock_timeout or settings.worker_lock_timeout)
        typer.echo(f"Recovered {recovered} stalled job(s)")
    finally:
        await dispose_engine()
