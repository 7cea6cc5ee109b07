"""Interface the job queue uses to apply settings inside the bot."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import TypedDict


class DriverResult(TypedDict):
    success: bool
    identifier: str
    steps: list[str]
    output: str


class WindowAutomationDriver(ABC):
    """Makes the bot reload the settings of one account.

    Implementations take exclusive control of the desktop for the duration
    of ``run`` and must never be invoked concurrently.
    """

    @abstractmethod
    def run(self, identifier: str, cancel_event: threading.Event | None = None) -> DriverResult:
        """Apply settings for ``identifier``.

        Raises ``TargetNotFound`` when the bot window is missing and
        ``AutomationFailed`` for any other failure. When ``cancel_event`` is
        set the run stops at its next step with ``AutomationCancelled``.
        """
