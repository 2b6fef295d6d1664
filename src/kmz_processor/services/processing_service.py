"""KMZ processing pipeline and its queue wiring.

``process_kmz_file`` runs one attempt of the pipeline against a single
session: extract, parse, enrich, replace features, thumbnail, mark processed.
``make_kmz_handler`` adapts it to the worker's handler signature, and
``build_worker`` assembles the worker with its failure alert listener.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kmz_processor.core.config import Settings
from kmz_processor.core.queue import BackoffPolicy, JobOptions, JobQueue
from kmz_processor.core.worker import FailedListener, JobHandler, Worker
from kmz_processor.lib.kmz import (
    FILE_MISSING,
    FileMissingError,
    NoKmlDocumentError,
    TerminalProcessingError,
    load_kmz,
)
from kmz_processor.lib.notifier import send_job_failure_notification
from kmz_processor.lib.thumbnail import generate_thumbnail, thumbnail_dir_for
from kmz_processor.lib.thumbnail.renderer import DEFAULT_TIMEOUT
from kmz_processor.models.kmz_file import KmzFile
from kmz_processor.models.queue_job import QueueJob
from kmz_processor.services import kmz_service


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of one pipeline attempt."""

    success: bool
    reason: str | None = None
    feature_count: int = 0
    thumbnail_path: str | None = None


def _failure_reason(error: BaseException) -> str:
    if isinstance(error, TerminalProcessingError):
        return error.reason
    return str(error) or type(error).__name__


async def record_failure(session: AsyncSession, kmz_id: int, reason: str) -> bool:
    """Roll back the attempt and mark the file ``failed`` with ``reason``.

    Errors while recording are logged and swallowed so the caller can
    re-raise the failure that caused them.

    Returns:
        True if the failed status was committed.
    """
    try:
        await session.rollback()
        await kmz_service.mark_failed(session, kmz_id, reason)
        await session.commit()
    except Exception:
        logger.exception(f"Could not mark kmz {kmz_id} failed ({reason})")
        return False
    return True


async def process_kmz_file(
    session: AsyncSession,
    kmz_id: int,
    file_path: Path | str,
    *,
    render_service_url: str | None = None,
    base_dir: Path | str | None = None,
    render_timeout: float = DEFAULT_TIMEOUT,
) -> ProcessingResult:
    """Process a stored KMZ archive into feature rows.

    Every failure leaves the file marked ``failed`` with a reason.  An
    archive without a KML document is not an error here: an unsuccessful
    result is returned.  Any other failure is re-raised after the marking.
    The feature replace is committed on its own so a failure anywhere in it
    leaves the previous feature set untouched.

    Args:
        session: Session owned by the caller for the whole attempt.
        kmz_id: Id of the KmzFile row.
        file_path: Path to the stored archive.
        render_service_url: Optional WMS render service base URL.
        base_dir: Directory thumbnails are stored under (``uploads/thumbnails``).
        render_timeout: Render service timeout in seconds.

    Returns:
        ProcessingResult describing the attempt.

    Raises:
        ArchiveError: If the file is not a zip archive.
        KmlParseError: If the KML document is malformed.
    """
    try:
        document, collection = load_kmz(Path(file_path))
    except NoKmlDocumentError as e:
        await record_failure(session, kmz_id, e.reason)
        return ProcessingResult(success=False, reason=e.reason)
    except Exception as e:
        await record_failure(session, kmz_id, _failure_reason(e))
        raise

    logger.info(f"KMZ {kmz_id}: parsed {len(collection)} feature(s) from {document.entry_name}")

    try:
        feature_count = await kmz_service.replace_features(session, kmz_id, collection)
        await session.commit()
    except Exception as e:
        logger.error(f"Feature replace failed for kmz {kmz_id}: {e}")
        await record_failure(session, kmz_id, _failure_reason(e))
        raise

    thumbnail = await generate_thumbnail(
        kmz_id,
        collection,
        thumbnail_dir_for(base_dir or "."),
        render_service_url=render_service_url,
        timeout=render_timeout,
    )
    thumbnail_path = str(thumbnail.path) if thumbnail.path is not None else None

    try:
        await kmz_service.mark_processed(session, kmz_id, feature_count=feature_count, thumbnail_path=thumbnail_path)
        await session.commit()
    except Exception as e:
        await record_failure(session, kmz_id, _failure_reason(e))
        raise

    logger.info(f"KMZ {kmz_id} processed: {feature_count} feature(s)")
    return ProcessingResult(success=True, feature_count=feature_count, thumbnail_path=thumbnail_path)


def resolve_stored_path(payload: dict[str, Any], upload_dir: Path) -> Path:
    """Location of the archive a queue entry refers to."""
    stored_path = payload.get("stored_path")
    if stored_path:
        return Path(stored_path)
    return upload_dir / str(payload.get("filename") or "")


def make_kmz_handler(session_factory: async_sessionmaker[AsyncSession], settings: Settings) -> JobHandler:
    """Build the worker handler that runs one pipeline attempt per queue entry."""

    async def handle_queue_job(entry: QueueJob) -> ProcessingResult:
        payload = entry.payload or {}
        kmz_id = int(payload["kmz_id"])

        async with session_factory() as session:
            try:
                await kmz_service.mark_processing(session, kmz_id)
                await session.commit()
            except Exception as e:
                await record_failure(session, kmz_id, _failure_reason(e))
                raise

            file_path = resolve_stored_path(payload, settings.upload_path)
            if not file_path.exists():
                await record_failure(session, kmz_id, FILE_MISSING)
                raise FileMissingError(f"Stored file not found: {file_path}")

            result = await process_kmz_file(
                session,
                kmz_id,
                file_path,
                render_service_url=settings.render_service_url,
                base_dir=settings.base_dir,
                render_timeout=settings.render_timeout,
            )

        if not result.success:
            raise TerminalProcessingError(result.reason or "processing_failed")
        return result

    return handle_queue_job


def make_failure_listener(settings: Settings) -> FailedListener:
    """Build the ``on_failed`` listener that alerts once an entry is terminally failed."""

    async def notify_on_terminal_failure(entry: QueueJob, error: BaseException) -> None:
        if not entry.is_exhausted:
            return
        payload = entry.payload or {}
        await send_job_failure_notification(
            settings.job_alert_webhook,
            job_id=payload.get("kmz_id"),
            filename=payload.get("filename"),
            error=error,
            timeout=settings.alert_timeout,
        )

    return notify_on_terminal_failure


def job_options_from_settings(settings: Settings) -> JobOptions:
    return JobOptions(
        max_attempts=settings.queue_max_attempts,
        backoff=BackoffPolicy(type="exponential", delay_ms=settings.queue_backoff_delay_ms),
    )


async def enqueue_kmz(
    queue: JobQueue,
    kmz_file: KmzFile,
    settings: Settings,
    *,
    session: AsyncSession | None = None,
) -> QueueJob:
    """Queue a processing job for an uploaded file.

    With ``session`` the entry joins that session's transaction.
    """
    payload = {
        "kmz_id": kmz_file.id,
        "filename": kmz_file.filename,
        "stored_path": kmz_file.storage_path,
    }
    return await queue.enqueue(payload, job_options_from_settings(settings), session=session)


def build_worker(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    queue: JobQueue | None = None,
) -> Worker:
    """Assemble the KMZ worker: queue, handler, and failure alerting.

    Args:
        settings: Application settings.
        session_factory: Factory for per-attempt and per-queue-operation sessions.
        queue: Queue to consume; defaults to ``settings.queue_name``.

    Returns:
        A Worker ready to ``run()``.
    """
    queue = queue or JobQueue(session_factory, name=settings.queue_name)
    worker = Worker(
        queue,
        make_kmz_handler(session_factory, settings),
        concurrency=settings.worker_concurrency,
        poll_interval=settings.worker_poll_interval,
        lock_timeout=settings.worker_lock_timeout,
        unrecoverable_errors=(TerminalProcessingError,),
    )
    worker.on_failed(make_failure_listener(settings))

    @worker.on_completed
    def log_completed(entry: QueueJob, result: Any) -> None:
        logger.info(f"Job {entry.id} completed for kmz {entry.kmz_id}")

    return worker
