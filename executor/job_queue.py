"""Single-flight FIFO queue of "apply changes" automation jobs.

One worker thread takes the head job, waits until no remote desktop session
is attached, runs the GUI driver and reports the outcome, then removes the
job and moves on. Requests for an identifier that is already waiting are
folded into the waiting job, since its run will pick up the latest settings
anyway.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from core.errors import (
    AutomationCancelled,
    AutomationError,
    GateWaitExpired,
    ValidationError,
)
from core.event_bus import (
    AUTOMATION_STATUS,
    QUEUE_UPDATE,
    StatusBroadcaster,
    channel_for,
    status_event,
)

logger = logging.getLogger("dash.job_queue")

WAITING_MESSAGE = "RDP connected. Waiting for disconnect (use disconnect_headless.bat)..."
PROCESSING_MESSAGE = "Applying changes..."
COMPLETED_MESSAGE = "Changes applied successfully"


class JobRunner(Protocol):
    def run(self, identifier: str) -> Any: ...


class ConsoleGate(Protocol):
    def is_safe(self) -> bool: ...


@dataclass
class Job:
    """One pending or in-flight request to re-apply an identifier's settings."""

    identifier: str
    channel: StatusBroadcaster | None = None
    enqueued_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class QueueStatus:
    running: bool
    queue_length: int
    queued_identifiers: list[str]
    current_identifier: str | None

    def as_payload(self) -> dict[str, Any]:
        return {
            "isRunning": self.running,
            "queueLength": self.queue_length,
            "queuedIdentifiers": list(self.queued_identifiers),
            "currentIdentifier": self.current_identifier,
        }


class AutomationQueue:
    """Process-wide automation queue; build one per process and share it."""

    def __init__(
        self,
        runner: JobRunner,
        session_gate: ConsoleGate,
        broadcaster: StatusBroadcaster | None = None,
        *,
        gate_poll_seconds: float = 5.0,
        gate_max_wait_seconds: float | None = None,
        autostart: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.session_gate = session_gate
        self.gate_poll_seconds = gate_poll_seconds
        self.gate_max_wait_seconds = gate_max_wait_seconds
        self.autostart = autostart
        self._clock = clock
        self._jobs: deque[Job] = deque()
        self._current: Job | None = None
        self._running = False
        self._queue_channel = broadcaster
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._stopping = threading.Event()
        self._worker: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def enqueue(self, identifier: str, channel: StatusBroadcaster | None = None) -> int:
        """Queue a run for ``identifier`` and return its 1-based queue position.

        A request for an identifier that is already waiting returns the
        existing job's position; only its channel is refreshed.
        """
        if not isinstance(identifier, str) or not identifier:
            raise ValidationError("IGG ID is required")

        with self._lock:
            if channel is not None:
                self._queue_channel = channel
            existing = self._find_waiting(identifier)
            if existing is not None:
                if channel is not None:
                    existing.channel = channel
                position = self._jobs.index(existing) + 1
                logger.info("IGG ID %s is already waiting in the queue.", identifier)
            else:
                self._jobs.append(Job(identifier=identifier, channel=channel))
                position = len(self._jobs)
                logger.info("Enqueued IGG ID: %s. Queue size: %d", identifier, len(self._jobs))
                self._changed.notify_all()
            status = self._status_locked()
            queue_channel = self._queue_channel

        self._emit(queue_channel, None, QUEUE_UPDATE, status.as_payload())
        if self.autostart:
            self.start()
        return position

    def get_status(self) -> QueueStatus:
        """Snapshot of the queue; never blocks on a running job."""
        with self._lock:
            return self._status_locked()

    def process_next(self) -> bool:
        """Run the head job if nothing is running.

        Returns False without doing anything when a run is already in
        progress or the queue is empty. The check and the claim of the head
        job happen under one lock acquisition, so concurrent callers can
        never start two runs.
        """
        with self._lock:
            if self._running or not self._jobs:
                return False
            job = self._jobs[0]
            self._running = True
            self._current = job
            status = self._status_locked()
            queue_channel = self._queue_channel
        self._emit(queue_channel, None, QUEUE_UPDATE, status.as_payload())

        try:
            self._run_job(job)
        finally:
            with self._lock:
                if self._jobs and self._jobs[0] is job:
                    self._jobs.popleft()
                else:
                    self._jobs.remove(job)
                self._running = False
                self._current = None
                status = self._status_locked()
                queue_channel = self._queue_channel
                self._changed.notify_all()
            self._emit(queue_channel, None, QUEUE_UPDATE, status.as_payload())
        return True

    def start(self) -> None:
        """Start the worker thread if it is not already running."""
        with self._lock:
            if self._worker is not None and self._worker.is_alive():
                return
            self._stopping.clear()
            self._worker = threading.Thread(
                target=self._work_loop, name="automation-queue", daemon=True
            )
            self._worker.start()

    def shutdown(self, timeout: float | None = 5.0) -> None:
        """Stop the worker after the current run; pending jobs are dropped."""
        self._stopping.set()
        with self._lock:
            self._changed.notify_all()
            worker = self._worker
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout)

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        """Block until the queue is empty and nothing runs."""
        with self._lock:
            return self._changed.wait_for(
                lambda: not self._jobs and not self._running, timeout=timeout
            )

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _work_loop(self) -> None:
        while not self._stopping.is_set():
            with self._lock:
                while (not self._jobs or self._running) and not self._stopping.is_set():
                    self._changed.wait()
            if self._stopping.is_set():
                break
            try:
                self.process_next()
            except Exception:
                logger.exception("Queue processing error")

    def _run_job(self, job: Job) -> None:
        try:
            self._wait_for_console(job)
            self._emit_status(job, "processing", PROCESSING_MESSAGE)
            self.runner.run(job.identifier)
        except AutomationError as exc:
            logger.error("Automation failed for %s: %s", job.identifier, exc)
            if exc.output:
                logger.debug("Driver transcript for %s:\n%s", job.identifier, exc.output)
            self._emit_status(job, "error", str(exc) or "Automation failed")
        except Exception as exc:
            logger.exception("Automation failed for %s", job.identifier)
            self._emit_status(job, "error", str(exc) or "Automation failed")
        else:
            self._emit_status(job, "completed", COMPLETED_MESSAGE)

    def _wait_for_console(self, job: Job) -> None:
        started = self._clock()
        while not self._console_is_safe():
            waited = self._clock() - started
            if self.gate_max_wait_seconds is not None and waited >= self.gate_max_wait_seconds:
                raise GateWaitExpired(
                    f"Remote session still attached after {waited:.0f} seconds; request dropped."
                )
            logger.info("RDP detected. Waiting for disconnect...")
            self._emit_status(job, "waiting", WAITING_MESSAGE)
            if self._stopping.wait(self.gate_poll_seconds):
                raise AutomationCancelled("Automation queue is shutting down.")

    def _console_is_safe(self) -> bool:
        try:
            return bool(self.session_gate.is_safe())
        except Exception:
            logger.warning("Session check raised; proceeding as console session.", exc_info=True)
            return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_waiting(self, identifier: str) -> Job | None:
        for job in self._jobs:
            if job is not self._current and job.identifier == identifier:
                return job
        return None

    def _status_locked(self) -> QueueStatus:
        current = self._current.identifier if self._running and self._current else None
        return QueueStatus(
            running=self._running,
            queue_length=len(self._jobs),
            queued_identifiers=[job.identifier for job in self._jobs],
            current_identifier=current,
        )

    def _emit_status(self, job: Job, status: str, message: str) -> None:
        self._emit(
            job.channel or self._queue_channel,
            channel_for(job.identifier),
            AUTOMATION_STATUS,
            status_event(status, message),
        )

    @staticmethod
    def _emit(
        broadcaster: StatusBroadcaster | None,
        channel: str | None,
        event_name: str,
        payload: dict[str, Any],
    ) -> None:
        if broadcaster is None:
            return
        try:
            if channel is None:
                broadcaster.publish(event_name, payload)
            else:
                broadcaster.publish_to(channel, event_name, payload)
        except Exception:
            logger.warning("Broadcast of %s failed", event_name, exc_info=True)
