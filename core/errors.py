"""Exception hierarchy shared by the queue, the GUI driver and the HTTP layer."""

from __future__ import annotations


class DashboardError(Exception):
    """Base class for expected, reportable failures."""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message or self.__class__.__name__


class ValidationError(DashboardError):
    """Missing or malformed request input."""

    status_code = 400


class NotFoundError(DashboardError):
    """Identifier or document unknown to a collaborator."""

    status_code = 404


class SubscriptionExpired(DashboardError):
    """Policy denial: the identifier's subscription has lapsed."""

    status_code = 403


class AutomationError(DashboardError):
    """A driver run did not complete.

    ``output`` carries the step transcript captured up to the failure so that
    operators can see how far the script got.
    """

    def __init__(self, message: str = "", output: str = "") -> None:
        super().__init__(message)
        self.output = output


class TargetNotFound(AutomationError):
    """The bot window could not be located."""


class AutomationFailed(AutomationError):
    """Any other driver-level failure."""


class AutomationTimeout(AutomationFailed):
    """The run exceeded its wall-clock budget."""


class AutomationCancelled(AutomationFailed):
    """The run was told to stop between steps."""


class GateWaitExpired(AutomationFailed):
    """A remote session stayed attached longer than the configured maximum."""


class GateInspectionFailure(DashboardError):
    """Session state could not be inspected; callers treat this as safe."""
