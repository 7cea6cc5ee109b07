"""Admission check for automation requests."""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import NotFoundError, SubscriptionExpired
from directory.account_directory import AccountDirectory
from settings_store.file_store import SettingsStore


@dataclass
class AdmissionDecision:
    """Represents allow/block decision."""

    allowed: bool
    reason: str
    status_code: int = 200


class SubscriptionPolicy:
    """Rejects unknown identifiers and lapsed subscriptions."""

    def __init__(
        self,
        directory: AccountDirectory,
        settings_store: SettingsStore | None = None,
        admit_settings_folders: bool = True,
    ) -> None:
        self.directory = directory
        self.settings_store = settings_store
        self.admit_settings_folders = admit_settings_folders

    def is_known(self, identifier: str) -> bool:
        if self.directory.identifier_exists(identifier):
            return True
        if self.admit_settings_folders and self.settings_store is not None:
            return self.settings_store.exists(identifier)
        return False

    def check(self, identifier: str) -> AdmissionDecision:
        if not self.is_known(identifier):
            return AdmissionDecision(False, f"IGG ID {identifier} not found", 404)
        if self.directory.subscription_expired(identifier):
            return AdmissionDecision(False, "Subscription expired. Cannot apply changes.", 403)
        return AdmissionDecision(True, "Allowed by policy.")

    def admit(self, identifier: str) -> None:
        """Raise ``NotFoundError`` / ``SubscriptionExpired`` when not admitted."""
        decision = self.check(identifier)
        if decision.allowed:
            return
        if decision.status_code == 404:
            raise NotFoundError(decision.reason)
        raise SubscriptionExpired(decision.reason)
