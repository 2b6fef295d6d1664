"""KMZ CLI commands: process a stored file directly, or queue a local archive."""

import asyncio
from pathlib import Path

import typer


def process(
    kmz_id: int = typer.Argument(..., help="KMZ file id"),  # noqa: B008
) -> None:
    """Run the processing pipeline for one file in the foreground, without the queue."""
    asyncio.run(_process(kmz_id))


def enqueue(
    path: Path = typer.Argument(..., help="Path to a .kmz archive", exists=True, dir_okay=False),  # noqa: B008
) -> None:
    """Store a local KMZ archive and queue it for processing."""
    asyncio.run(_enqueue(path))


async def _process(kmz_id: int) -> None:
    """Async implementation of process."""
    from kmz_processor.core.config import get_settings
    from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
    from kmz_processor.lib.kmz import KmzProcessingError
    from kmz_processor.services import kmz_service
    from kmz_processor.services.processing_service import process_kmz_file, resolve_stored_path

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        async with factory() as session:
            kmz_file = await kmz_service.get_kmz_file(session, kmz_id)
            if kmz_file is None:
                typer.echo(f"KMZ file {kmz_id} not found", err=True)
                raise typer.Exit(code=1)

            file_path = resolve_stored_path(
                {"stored_path": kmz_file.storage_path, "filename": kmz_file.filename}, settings.upload_path
            )
            if not file_path.exists():
                typer.echo(f"Stored file not found: {file_path}", err=True)
                raise typer.Exit(code=1)

            await kmz_service.mark_processing(session, kmz_id)
            await session.commit()
            try:
                result = await process_kmz_file(
                    session,
                    kmz_id,
                    file_path,
                    render_service_url=settings.render_service_url,
                    base_dir=settings.base_dir,
                    render_timeout=settings.render_timeout,
                )
            except KmzProcessingError as e:
                typer.echo(f"KMZ {kmz_id} failed: {e}", err=True)
                raise typer.Exit(code=1) from e

        if not result.success:
            typer.echo(f"KMZ {kmz_id} failed: {result.reason}", err=True)
            raise typer.Exit(code=1)

        typer.echo(f"KMZ {kmz_id} processed:")
        typer.echo(f"  Features:   {result.feature_count}")
        typer.echo(f"  Thumbnail:  {result.thumbnail_path or 'none'}")
    finally:
        await dispose_engine()


async def _enqueue(path: Path) -> None:
    """Async implementation of enqueue."""
    from kmz_processor.core.config import get_settings
    from kmz_processor.core.database import dispose_engine, get_session_factory, init_engine
    from kmz_processor.core.queue import JobQueue
    from kmz_processor.services.upload_service import InvalidUploadError, accept_upload, validate_upload

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        factory = get_session_factory()
        queue = JobQueue(factory, name=settings.queue_name)
        async with factory() as session:
            try:
                original_name = validate_upload(path.name)
                kmz_file = await accept_upload(
                    session, queue, settings, original_name=original_name, content=path.read_bytes()
                )
            except InvalidUploadError as e:
                typer.echo(f"Rejected {path.name}: {e}", err=True)
                raise typer.Exit(code=1) from e

        typer.echo(f"Queued {path.name} as KMZ {kmz_file.id}")
    finally:
        await dispose_engine()
