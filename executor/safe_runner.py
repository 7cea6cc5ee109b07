"""Bounded execution of driver runs with auditing."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout

from core.errors import AutomationError, AutomationFailed, AutomationTimeout
from governance.audit_logger import AuditLogger
from os_controller.base_controller import DriverResult, WindowAutomationDriver


class SafeRunner:
    """Runs the driver on its own thread under a hard wall-clock limit.

    The executor has a single worker, so a run that outlives its timeout
    still blocks the next one from touching the desktop until it returns.
    """

    def __init__(
        self,
        driver: WindowAutomationDriver,
        timeout_seconds: float = 120.0,
        audit_logger: AuditLogger | None = None,
        cancel_grace_seconds: float = 10.0,
    ) -> None:
        self.driver = driver
        self.timeout_seconds = timeout_seconds
        self.cancel_grace_seconds = cancel_grace_seconds
        self.audit_logger = audit_logger
        self.logger = logging.getLogger("dash.safe_runner")
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gui-driver")

    def run(self, identifier: str) -> DriverResult:
        """Execute one run; raise ``AutomationError`` subclasses on failure.

        The time budget starts when the driver actually starts. After a
        timeout the call keeps blocking until the abandoned run has stopped
        (at most ``cancel_grace_seconds``), so the caller never reports the
        desktop as free while the driver may still be using it.
        """
        cancel_event = threading.Event()
        started_event = threading.Event()

        def invoke() -> DriverResult:
            started_event.set()
            return self.driver.run(identifier, cancel_event)

        future = self._executor.submit(invoke)
        while not started_event.wait(self.timeout_seconds):
            if future.done():
                break
            self.logger.warning(
                "Previous driver run still holds the desktop; %s is waiting.", identifier
            )
        started = time.monotonic()
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            cancel_event.set()
            self._wait_for_abandoned_run(identifier, future)
            reason = f"Automation timed out after {self.timeout_seconds:g} seconds."
            self._audit(identifier, "timeout", reason, started)
            raise AutomationTimeout(reason) from None
        except AutomationError as exc:
            self._audit(identifier, "failed", str(exc), started)
            raise
        except Exception as exc:
            self._audit(identifier, "failed", str(exc), started)
            raise AutomationFailed(f"Automation failed: {exc}") from exc
        self._audit(identifier, "success", "", started)
        return result

    def _wait_for_abandoned_run(self, identifier: str, future: Future) -> None:
        try:
            future.result(timeout=self.cancel_grace_seconds)
        except FutureTimeout:
            self.logger.error(
                "Driver run for %s did not stop within %gs of cancellation.",
                identifier,
                self.cancel_grace_seconds,
            )
        except Exception as exc:
            self.logger.debug("Abandoned run for %s ended with %r", identifier, exc)

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def _audit(self, identifier: str, outcome: str, reason: str, started: float) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log(
                action="apply_changes",
                identifier=identifier,
                outcome=outcome,
                reason=reason,
                duration_seconds=time.monotonic() - started,
            )
        except OSError:
            self.logger.exception("Could not write audit record for %s", identifier)
