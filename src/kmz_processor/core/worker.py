"""Fixed-size asyncio worker pool consuming a ``JobQueue``.

Each slot claims one entry at a time, runs the registered handler, and then
acknowledges or fails the entry.  Listeners registered with ``on_completed``
and ``on_failed`` observe every outcome; the failed listener receives the
updated entry so it can tell a scheduled retry from a terminal failure.
"""

import asyncio
import inspect
import os
import socket
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from kmz_processor.core.queue import JobQueue, UnrecoverableJobError
from kmz_processor.models.queue_job import QueueJob

JobHandler = Callable[[QueueJob], Awaitable[Any]]
CompletedListener = Callable[[QueueJob, Any], Awaitable[None] | None]
FailedListener = Callable[[QueueJob, BaseException], Awaitable[None] | None]


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class Worker:
    """Run ``handler`` for queue entries with bounded concurrency.

    Args:
        queue: Queue to claim entries from.
        handler: Coroutine function processing one entry.
        concurrency: Number of slots, i.e. entries processed at once.
        poll_interval: Seconds an idle slot waits before claiming again.
        lock_timeout: Seconds before an active lease counts as stalled.  A
            running entry renews its lease every third of this.
        unrecoverable_errors: Exception types that fail an entry without
            retry, in addition to ``UnrecoverableJobError``.
        worker_id: Lease owner name; generated when omitted.
    """

    def __init__(
        self,
        queue: JobQueue,
        handler: JobHandler,
        *,
        concurrency: int = 2,
        poll_interval: float = 3.0,
        lock_timeout: float = 300.0,
        unrecoverable_errors: tuple[type[BaseException], ...] = (),
        worker_id: str | None = None,
    ) -> None:
        if concurrency < 1:
            msg = f"concurrency must be at least 1, got {concurrency}"
            raise ValueError(msg)
        self.queue = queue
        self.handler = handler
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout
        self.unrecoverable_errors = (UnrecoverableJobError, *unrecoverable_errors)
        self.worker_id = worker_id or default_worker_id()
        self._completed_listeners: list[CompletedListener] = []
        self._failed_listeners: list[FailedListener] = []
        self._stopping = asyncio.Event()

    def on_completed(self, listener: CompletedListener) -> CompletedListener:
        self._completed_listeners.append(listener)
        return listener

    def on_failed(self, listener: FailedListener) -> FailedListener:
        self._failed_listeners.append(listener)
        return listener

    async def _emit(self, listeners: list[Callable[..., Any]], *args: Any) -> None:
        for listener in listeners:
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Worker listener {getattr(listener, '__name__', listener)!r} failed")

    async def _renew_lease(self, entry: QueueJob) -> None:
        """Keep the lease of a running entry fresh until cancelled."""
        interval = self.lock_timeout / 3
        while True:
            await asyncio.sleep(interval)
            try:
                if not await self.queue.extend_lease(entry):
                    logger.warning(f"Job {entry.id} lease lost by {entry.locked_by}")
                    return
            except Exception as e:
                logger.warning(f"Lease renewal for job {entry.id} failed: {e}")

    async def process_next(self, slot_worker_id: str | None = None) -> bool:
        """Claim and process a single entry.

        Returns:
            True if an entry was processed, False if the queue had none ready.
        """
        lease_owner = slot_worker_id or self.worker_id
        entry = await self.queue.claim(lease_owner)
        if entry is None:
            return False

        logger.info(f"Processing job {entry.id} ({entry.job_name}) attempt {entry.attempts_made + 1}/{entry.max_attempts}")
        heartbeat = asyncio.create_task(self._renew_lease(entry))
        try:
            try:
                result = await self.handler(entry)
            finally:
                heartbeat.cancel()
                await asyncio.gather(heartbeat, return_exceptions=True)
        except self.unrecoverable_errors as e:
            failed = await self.queue.fail(entry, e, retryable=False)
            logger.error(f"Job {entry.id} failed without retry: {e}")
            await self._emit(self._failed_listeners, failed, e)
        except Exception as e:
            failed = await self.queue.fail(entry, e, retryable=True)
            logger.error(f"Job {entry.id} failed: {e}")
            await self._emit(self._failed_listeners, failed, e)
        else:
            completed = await self.queue.complete(entry)
            logger.info(f"Job {entry.id} completed")
            await self._emit(self._completed_listeners, completed, result)
        return True

    async def _idle(self) -> None:
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        except TimeoutError:
            pass

    async def _slot_loop(self, slot: int) -> None:
        slot_worker_id = f"{self.worker_id}/{slot}"
        while not self._stopping.is_set():
            processed = False
            try:
                if slot == 0:
                    await self.queue.recover_stalled(self.lock_timeout)
                processed = await self.process_next(slot_worker_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"Worker slot {slot_worker_id} error")
            if not processed:
                await self._idle()

    async def run(self) -> None:
        """Run all slots until ``stop()`` is called or the task is cancelled.

        Slots finish their current entry before exiting on ``stop()``.
        """
        self._stopping.clear()
        logger.info(f"Worker {self.worker_id} started on {self.queue.name} (concurrency={self.concurrency})")
        slots = [asyncio.create_task(self._slot_loop(i)) for i in range(self.concurrency)]
        try:
            await asyncio.gather(*slots)
        finally:
            for task in slots:
                task.cancel()
            await asyncio.gather(*slots, return_exceptions=True)
            logger.info(f"Worker {self.worker_id} stopped")

    def stop(self) -> None:
        self._stopping.set()


async def stop_worker(worker: Worker, worker_task: asyncio.Task, timeout: float) -> None:
    """Let in-flight jobs finish, cancelling ``worker_task`` after ``timeout`` seconds."""
    worker.stop()
    try:
        await asyncio.wait_for(worker_task, timeout=timeout)
    except TimeoutError:
        logger.warning(f"Worker {worker.worker_id} did not stop within {timeout}s; cancelled in-flight jobs")
