"""Durable job queue backed by the ``queue_jobs`` table.

Entries move ``waiting -> active -> completed | failed``.  A failed attempt
goes back to ``waiting`` with an exponential backoff until its attempt budget
is spent.  Claims use ``SELECT ... FOR UPDATE SKIP LOCKED`` so concurrent
workers never lease the same entry.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kmz_processor.models.queue_job import QueueJob, QueueJobStatus

DEFAULT_QUEUE_NAME = "kmz-processing"
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BACKOFF_DELAY_MS = 2000

_MAX_ERROR_LENGTH = 2000


class UnrecoverableJobError(Exception):
    """Raised by a handler to fail its entry without further attempts."""


@dataclass(frozen=True)
class BackoffPolicy:
    """Delay before a failed entry becomes claimable again."""

    type: str = "exponential"
    delay_ms: int = DEFAULT_BACKOFF_DELAY_MS

    def __post_init__(self) -> None:
        if self.type not in ("exponential", "fixed"):
            msg = f"Unknown backoff type: {self.type}"
            raise ValueError(msg)
        if self.delay_ms < 0:
            msg = f"Backoff delay must not be negative, got {self.delay_ms}"
            raise ValueError(msg)

    def delay_for(self, attempts_made: int) -> timedelta:
        """Delay after the ``attempts_made``-th failed attempt (1-based)."""
        if self.type == "fixed":
            return timedelta(milliseconds=self.delay_ms)
        return timedelta(milliseconds=self.delay_ms * 2 ** max(attempts_made - 1, 0))


@dataclass(frozen=True)
class JobOptions:
    """Retry policy attached to an entry at enqueue time."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)


def _now() -> datetime:
    return datetime.now(UTC)


def _error_text(error: BaseException | str) -> str:
    text = error if isinstance(error, str) else (str(error) or type(error).__name__)
    return text[:_MAX_ERROR_LENGTH]


def build_entry(
    payload: dict[str, Any],
    options: JobOptions | None = None,
    *,
    queue_name: str = DEFAULT_QUEUE_NAME,
    job_name: str = "process",
) -> QueueJob:
    """Create an unsaved entry, for callers enqueueing inside their own transaction."""
    options = options or JobOptions()
    return QueueJob(
        queue_name=queue_name,
        job_name=job_name,
        payload=payload,
        status=QueueJobStatus.WAITING,
        attempts_made=0,
        max_attempts=options.max_attempts,
        backoff_type=options.backoff.type,
        backoff_delay_ms=options.backoff.delay_ms,
        available_at=_now(),
    )


class JobQueue:
    """Queue operations, each in its own short transaction.

    Args:
        session_factory: Factory for the sessions used by every operation.
        name: Queue name; entries of other queues are ignored.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], name: str = DEFAULT_QUEUE_NAME) -> None:
        self._session_factory = session_factory
        self.name = name

    async def enqueue(
        self,
        payload: dict[str, Any],
        options: JobOptions | None = None,
        *,
        job_name: str = "process",
        session: AsyncSession | None = None,
    ) -> QueueJob:
        """Add an entry that is immediately claimable.

        Args:
            payload: Job data handed to the handler.
            options: Retry policy; defaults to ``JobOptions()``.
            job_name: Handler-visible job name.
            session: Caller's session.  When given, the entry is only added
                to it and becomes visible when the caller commits, so it
                shares the caller's transaction.
        """
        entry = build_entry(payload, options, queue_name=self.name, job_name=job_name)
        if session is not None:
            session.add(entry)
            return entry

        async with self._session_factory() as own_session:
            own_session.add(entry)
            await own_session.commit()
            await own_session.refresh(entry)
        logger.info(f"Enqueued job {entry.id} on {self.name} (max_attempts={entry.max_attempts})")
        return entry

    async def claim(self, worker_id: str) -> QueueJob | None:
        """Lease the oldest claimable entry, or return None when there is none.

        The row lock plus SKIP LOCKED makes the lease exclusive: a concurrent
        claimer skips the row instead of waiting for it.
        """
        now = _now()
        async with self._session_factory() as session:
            result = await session.execute(
                select(QueueJob)
                .where(
                    QueueJob.queue_name == self.name,
                    QueueJob.status == QueueJobStatus.WAITING,
                    QueueJob.available_at <= now,
                )
                .order_by(QueueJob.available_at, QueueJob.id)
                .limit(1)
                .with_for_update(skip_locked=True)
            )
            entry = result.scalar_one_or_none()
            if entry is None:
                return None

            entry.status = QueueJobStatus.ACTIVE
            entry.locked_at = now
            entry.locked_by = worker_id
            await session.commit()

        logger.debug(f"Worker {worker_id} claimed job {entry.id} (attempt {entry.attempts_made + 1})")
        return entry

    async def _locked_entry(self, session: AsyncSession, entry: QueueJob) -> QueueJob | None:
        current = await session.get(QueueJob, entry.id, with_for_update=True)
        if current is None:
            logger.warning(f"Job {entry.id} disappeared from the queue")
            return None
        if current.status != QueueJobStatus.ACTIVE or current.locked_by != entry.locked_by:
            logger.warning(f"Job {entry.id} lease lost by {entry.locked_by}; ignoring result")
            return None
        return current

    async def extend_lease(self, entry: QueueJob) -> bool:
        """Refresh ``locked_at`` of a leased entry so stall recovery leaves it alone.

        Returns:
            False when the entry is no longer leased by ``entry.locked_by``.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(QueueJob)
                .where(
                    QueueJob.id == entry.id,
                    QueueJob.status == QueueJobStatus.ACTIVE,
                    QueueJob.locked_by == entry.locked_by,
                )
                .values(locked_at=_now())
            )
            await session.commit()
        return (result.rowcount or 0) > 0

    async def complete(self, entry: QueueJob) -> QueueJob:
        """Acknowledge a successful attempt; the entry is archived as completed."""
        async with self._session_factory() as session:
            current = await self._locked_entry(session, entry)
            if current is None:
                return entry
            current.status = QueueJobStatus.COMPLETED
            current.finished_at = _now()
            current.locked_at = None
            current.locked_by = None
            current.last_error = None
            await session.commit()
        return current

    async def fail(self, entry: QueueJob, error: BaseException | str, *, retryable: bool = True) -> QueueJob:
        """Record a failed attempt and schedule the next one if budget remains.

        Args:
            entry: The leased entry.
            error: What went wrong.
            retryable: False fails the entry terminally regardless of budget.

        Returns:
            The updated entry; ``is_exhausted`` tells whether it is terminal.
        """
        now = _now()
        async with self._session_factory() as session:
            current = await self._locked_entry(session, entry)
            if current is None:
                return entry
            current.attempts_made += 1
            current.last_error = _error_text(error)
            current.locked_at = None
            current.locked_by = None

            if retryable and current.attempts_made < current.max_attempts:
                policy = BackoffPolicy(type=current.backoff_type, delay_ms=current.backoff_delay_ms)
                current.status = QueueJobStatus.WAITING
                current.available_at = now + policy.delay_for(current.attempts_made)
                logger.info(
                    f"Job {current.id} attempt {current.attempts_made}/{current.max_attempts} failed; "
                    f"retrying at {current.available_at.isoformat()}"
                )
            else:
                current.status = QueueJobStatus.FAILED
                current.finished_at = now
                logger.warning(
                    f"Job {current.id} failed permanently after {current.attempts_made}/{current.max_attempts} attempt(s)"
                )
            await session.commit()
        return current

    async def recover_stalled(self, lock_timeout: float) -> int:
        """Return entries whose lease outlived ``lock_timeout`` seconds to waiting.

        A worker that crashed mid-attempt leaves its entry active; recovery
        makes it claimable again without consuming an attempt.
        """
        now = _now()
        async with self._session_factory() as session:
            result = await session.execute(
                update(QueueJob)
                .where(
                    QueueJob.queue_name == self.name,
                    QueueJob.status == QueueJobStatus.ACTIVE,
                    QueueJob.locked_at < now - timedelta(seconds=lock_timeout),
                )
                .values(status=QueueJobStatus.WAITING, locked_at=None, locked_by=None, available_at=now)
            )
            await session.commit()
        recovered = result.rowcount or 0
        if recovered:
            logger.warning(f"Recovered {recovered} stalled job(s) on {self.name}")
        return recovered

    async def get_counts(self) -> dict[str, int]:
        """Number of entries per status."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(QueueJob.status, func.count())
                .where(QueueJob.queue_name == self.name)
                .group_by(QueueJob.status)
            )
            rows = result.all()
        counts = {status.value: 0 for status in QueueJobStatus}
        for status, count in rows:
            counts[str(status)] = count
        return counts


class QueueCountsCache:
    """Periodically refreshed queue counts for health endpoints.

    Health checks read the cached value so a slow database never delays the
    response; a failed refresh keeps the previous counts.
    """

    def __init__(self, queue: JobQueue, refresh_interval: float = 5.0) -> None:
        self._queue = queue
        self.refresh_interval = refresh_interval
        self.counts: dict[str, int] | None = None
        self.last_updated: datetime | None = None
        self._last_monotonic: float | None = None

    async def refresh(self) -> None:
        try:
            self.counts = await self._queue.get_counts()
        except Exception as e:
            logger.debug(f"Queue count refresh failed: {e}")
            return
        self.last_updated = _now()
        self._last_monotonic = time.monotonic()

    @property
    def is_fresh(self) -> bool:
        if self._last_monotonic is None:
            return False
        return time.monotonic() - self._last_monotonic < self.refresh_interval * 2

    def snapshot(self) -> dict[str, Any]:
        return {
            "status": "OK",
            "counts": self.counts,
            "counts_last_updated": self.last_updated.isoformat() if self.last_updated else None,
            "counts_fresh": self.is_fresh,
            "info": "counts available" if self.counts is not None else "queue unavailable",
        }

    async def run(self) -> None:
        """Refresh forever; cancel the task to stop."""
        while True:
            await self.refresh()
            await asyncio.sleep(self.refresh_interval)
