"""Bounded notification dispatch queue.

A fixed pool of worker tasks drains a bounded ``asyncio.Queue``:

* ``push`` waits while the buffer is full, so a burst of events slows the
  router down instead of growing memory without bound;
* each worker runs one job at a time, bounded by ``job_timeout``, so an
  unreachable target only ever occupies one worker;
* a failing job is logged and dropped; it never affects sibling jobs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from eventrouter.models.notifications import NotificationJob
from eventrouter.observability.metrics import dispatch_queue_depth

_log = structlog.get_logger(component="notifications.queue")

DeliverFn = Callable[[NotificationJob], Awaitable[object]]


class QueueClosedError(Exception):
    """Raised when a job is pushed after the queue was terminated."""


class DispatchQueue:
    """Fixed-size worker pool over a bounded job buffer.

    Args:
        deliver_fn:     Coroutine function performing one delivery.
        max_capacity:   Number of jobs buffered before ``push`` blocks.
        worker_threads: Number of concurrent worker tasks.
        job_timeout:    Upper bound, in seconds, for a single delivery.
    """

    def __init__(
        self,
        deliver_fn: DeliverFn,
        max_capacity: int = 10,
        worker_threads: int = 50,
        job_timeout: float = 40.0,
    ) -> None:
        if max_capacity < 1 or worker_threads < 1:
            raise ValueError("max_capacity and worker_threads must be positive")
        self._deliver_fn = deliver_fn
        self._worker_count = worker_threads
        self._job_timeout = job_timeout
        self._queue: asyncio.Queue[NotificationJob] = asyncio.Queue(maxsize=max_capacity)
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False
        self._in_flight = 0

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._closed

    @property
    def pending(self) -> int:
        """Jobs buffered and not yet picked up by a worker."""
        return self._queue.qsize()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"dispatch-worker-{i}") for i in range(self._worker_count)
        ]
        _log.info("dispatch_queue_started", workers=self._worker_count, capacity=self._queue.maxsize)

    async def push(self, job: NotificationJob) -> None:
        """Enqueue *job*, waiting for buffer space when the queue is full.

        Raises:
            QueueClosedError: if ``terminate`` has been called.
        """
        if self._closed:
            raise QueueClosedError("dispatch queue is terminated")
        await self._queue.put(job)
        dispatch_queue_depth.set(self._queue.qsize())

    async def terminate(self, timeout: float | None = None) -> None:
        """Stop accepting jobs, let buffered and in-flight jobs finish, stop workers.

        Args:
            timeout: Seconds to wait for the drain; ``None`` waits until every
                     job has completed or hit its own ``job_timeout``.
        """
        if self._closed:
            return
        self._closed = True
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except TimeoutError:
                _log.warning(
                    "dispatch_queue_drain_timeout",
                    pending=self._queue.qsize(),
                    in_flight=self._in_flight,
                )
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()
        _log.info("dispatch_queue_terminated")

    # Alias used by the application shutdown sequence.
    stop = terminate

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            dispatch_queue_depth.set(self._queue.qsize())
            self._in_flight += 1
            try:
                await asyncio.wait_for(self._deliver_fn(job), timeout=self._job_timeout)
            except TimeoutError:
                _log.warning(
                    "notification_job_timeout",
                    worker=index,
                    service_name=job.registration.service_name,
                    endpoint=job.registration.endpoint,
                    timeout=self._job_timeout,
                )
            except Exception as exc:
                _log.error(
                    "notification_job_failed",
                    worker=index,
                    service_name=job.registration.service_name,
                    endpoint=job.registration.endpoint,
                    error=str(exc),
                )
            finally:
                self._in_flight -= 1
                self._queue.task_done()
