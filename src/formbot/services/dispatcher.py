"""Bounded-queue worker pool that delivers submissions to the webhook.

Producers (the form engine) only ever touch the queue; ``enqueue`` never
waits on delivery. ``workers`` loops run on a ThreadPoolExecutor, each
pulling one event at a time and making one POST. Failures are logged and
counted, never retried.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Literal

import structlog

from formbot.config.models import WebhookConfig
from formbot.domain.events import SubmissionEvent
from formbot.errors import DispatchError
from formbot.infrastructure.webhook import WebhookClient

logger = structlog.get_logger(__name__)

OverflowPolicy = Literal["drop", "block"]

# Queue sentinel telling one worker loop to exit.
_STOP = object()


class SubmissionDispatcher:
    """Deliver :class:`SubmissionEvent` objects without blocking producers.

    Parameters:
        client: Shared webhook client used by every worker.
        workers: Number of worker loops.
        queue_size: Capacity of the pending-event queue.
        overflow: ``"drop"`` rejects at once when full; ``"block"`` waits up
            to *enqueue_timeout* seconds for a free slot.
        enqueue_timeout: Upper bound on a blocking enqueue.
    """

    def __init__(
        self,
        client: WebhookClient,
        *,
        workers: int = 2,
        queue_size: int = 100,
        overflow: OverflowPolicy = "drop",
        enqueue_timeout: float = 5.0,
    ) -> None:
        if workers < 1:
            msg = "workers must be at least 1"
            raise ValueError(msg)
        if queue_size < 1:
            msg = "queue_size must be at least 1"
            raise ValueError(msg)
        self._client = client
        self._overflow = overflow
        self._enqueue_timeout = enqueue_timeout
        self._queue: queue.Queue[object] = queue.Queue(maxsize=queue_size)
        self._workers = workers
        self._state_lock = threading.Lock()
        self._closing = False
        # Producers between the closed check and their put.
        self._producers = 0
        self._idle = threading.Condition(self._state_lock)
        self._delivered = 0
        self._failed = 0
        self._dropped = 0
        self._executor: ThreadPoolExecutor | None = ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix="formbot-dispatch",
        )
        self._futures: list[Future[None]] = [
            self._executor.submit(self._run_worker, n) for n in range(workers)
        ]

    @classmethod
    def from_config(cls, config: WebhookConfig) -> SubmissionDispatcher:
        """Build a dispatcher and its client from the ``[webhook]`` section."""
        return cls(
            WebhookClient(config),
            workers=config.workers,
            queue_size=config.queue_size,
            overflow=config.overflow,
            enqueue_timeout=config.enqueue_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def delivered(self) -> int:
        with self._state_lock:
            return self._delivered

    @property
    def failed(self) -> int:
        with self._state_lock:
            return self._failed

    @property
    def dropped(self) -> int:
        with self._state_lock:
            return self._dropped

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        with self._state_lock:
            return self._closing

    def enqueue(self, event: SubmissionEvent) -> bool:
        """Hand *event* to the workers. False means it was dropped.

        True is only returned for an event that shutdown will still drain.
        """
        if not self._admit():
            logger.error("dispatcher_closed", form=event.form_name)
            self._count("dropped")
            return False

        try:
            return self._put(event)
        finally:
            with self._idle:
                self._producers -= 1
                if self._producers == 0:
                    self._idle.notify_all()

    def shutdown(self, *, timeout: float | None = None) -> None:
        """Stop accepting events, drain the queue, and close the client.

        Idempotent. Events already queued are still delivered, including
        those from producers that were admitted before shutdown began.
        """
        with self._idle:
            if self._closing:
                return
            self._closing = True
            # The stop sentinels must land behind every admitted event.
            self._idle.wait_for(lambda: self._producers == 0)

        for _ in range(self._workers):
            # Blocks until a worker frees a slot; workers keep draining.
            self._queue.put(_STOP)

        for future in self._futures:
            future.result(timeout=timeout)
        self._futures.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        self._client.close()
        logger.info(
            "dispatcher_stopped",
            delivered=self.delivered,
            failed=self.failed,
            dropped=self.dropped,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _count(self, counter: str) -> None:
        with self._state_lock:
            setattr(self, f"_{counter}", getattr(self, f"_{counter}") + 1)

    def _admit(self) -> bool:
        with self._state_lock:
            if self._closing:
                return False
            self._producers += 1
            return True

    def _put(self, event: SubmissionEvent) -> bool:
        try:
            if self._overflow == "block":
                self._queue.put(event, timeout=self._enqueue_timeout)
            else:
                self._queue.put_nowait(event)
        except queue.Full:
            logger.error(
                "dispatch_queue_full",
                form=event.form_name,
                overflow=self._overflow,
                capacity=self._queue.maxsize,
            )
            self._count("dropped")
            return False
        return True

    def _run_worker(self, worker_id: int) -> None:
        log = logger.bind(worker=worker_id)
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                assert isinstance(item, SubmissionEvent)
                self._deliver(item, log)
            finally:
                self._queue.task_done()

    def _deliver(self, event: SubmissionEvent, log: structlog.stdlib.BoundLogger) -> None:
        try:
            status_code = self._client.post(event.to_payload())
        except DispatchError as exc:
            log.error("webhook_failed", form=event.form_name, error=str(exc))
            self._count("failed")
            return
        except Exception:
            # A worker must outlive any single bad event.
            log.exception("webhook_crashed", form=event.form_name)
            self._count("failed")
            return
        log.debug("webhook_delivered", form=event.form_name, status_code=status_code)
        self._count("delivered")
