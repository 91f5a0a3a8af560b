"""
Paced, single-consumer delivery queue for chat notifications.

Tasks are delivered in FIFO order by one background drain thread. A task the
sink rejects with backpressure goes back to the head of the queue and is
retried after the next pacing interval; any other failure drops the task.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from .logging_bridge import error as log_error
from .models import DeliveryOutcome, DeliveryResult, NotificationTask

LOG = logging.getLogger(__name__)

SendFn = Callable[[NotificationTask], DeliveryResult]


@dataclass
class QueueStats:
    delivered: int = 0
    requeued: int = 0
    dropped: int = 0


class DispatchQueue:
    def __init__(
        self,
        send: SendFn,
        min_interval: float,
        *,
        poll_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._send = send
        self.min_interval = float(min_interval)
        self.poll_interval = float(poll_interval)
        self._clock = clock
        self._sleep = sleep

        self._tasks: deque[NotificationTask] = deque()
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._draining = False
        self._worker: threading.Thread | None = None

        self.last_send_timestamp: float | None = None
        # Time of the most recent attempt of any outcome; pacing is measured from here.
        self._last_attempt: float | None = None
        self.stats = QueueStats()

    # ---- Public API ---------------------------------------------------------

    def enqueue(self, task: NotificationTask) -> None:
        """Append to the tail; starts the drain worker if none is running. Never blocks on delivery."""
        with self._lock:
            self._tasks.append(task)
            if self._draining:
                return
            self._draining = True
            self._worker = threading.Thread(target=self._drain, name="job-relay-dispatch", daemon=True)
            self._worker.start()

    def wait_for_drain(self, timeout: float | None = None) -> bool:
        """
        Block until the queue is empty and no drain is in progress.
        Wakes at least every `poll_interval`. False only if `timeout` expired first.
        """
        deadline = None if timeout is None else self._clock() + timeout
        with self._idle:
            while self._tasks or self._draining:
                if deadline is not None and self._clock() >= deadline:
                    return False
                self._idle.wait(self.poll_interval)
        return True

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._tasks)

    @property
    def draining(self) -> bool:
        with self._lock:
            return self._draining

    # ---- Drain loop ---------------------------------------------------------

    def _drain(self) -> None:
        while True:
            with self._lock:
                # Empty check and flag reset happen together so a concurrent
                # enqueue either sees draining=True or starts a fresh worker.
                if not self._tasks:
                    self._draining = False
                    self._idle.notify_all()
                    return

            self._pace()

            with self._lock:
                task = self._tasks.popleft()

            result = self._deliver(task)
            now = self._clock()
            self._last_attempt = now

            if result.outcome is DeliveryOutcome.DELIVERED:
                self.last_send_timestamp = now
                self.stats.delivered += 1
            elif result.outcome is DeliveryOutcome.RATE_LIMITED:
                with self._lock:
                    self._tasks.appendleft(task)
                self.stats.requeued += 1
                LOG.info("Chat sink rate limited; retrying %s after %.2fs", task.record.id, self.min_interval)
            else:
                self.stats.dropped += 1
                log_error({
                    "component": "job_relay.dispatch",
                    "op": "deliver",
                    "job_id": task.record.id,
                    "status_code": result.status_code,
                    "error": result.error,
                })

    def _pace(self) -> None:
        if self._last_attempt is None:
            return
        wait = self._last_attempt + self.min_interval - self._clock()
        if wait > 0:
            self._sleep(wait)

    def _deliver(self, task: NotificationTask) -> DeliveryResult:
        try:
            return self._send(task)
        except Exception as e:
            return DeliveryResult.failed(repr(e))
