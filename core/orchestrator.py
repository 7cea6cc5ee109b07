"""Top-level application wiring."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.event_bus import EventBus, StatusBroadcaster
from core.policy_runtime import AppConfig, ensure_runtime_dirs, load_effective_config
from directory.account_directory import AccountDirectory
from directory.sql_store import SQLStore
from executor.job_queue import AutomationQueue
from executor.safe_runner import SafeRunner
from governance.audit_logger import AuditLogger
from governance.subscription_policy import SubscriptionPolicy
from os_controller.base_controller import WindowAutomationDriver
from os_controller.session_gate import SessionGate
from os_controller.windows_controller import ReloadSettingsDriver
from settings_store.file_store import SettingsStore


@dataclass
class RuntimeBundle:
    """Holds initialized runtime components.

    Exactly one bundle is built per process; request handlers receive it by
    injection instead of reaching for module globals.
    """

    config: AppConfig
    paths: dict[str, Path]
    broadcaster: StatusBroadcaster
    directory: AccountDirectory
    settings: SettingsStore
    policy: SubscriptionPolicy
    session_gate: SessionGate
    driver: WindowAutomationDriver
    runner: SafeRunner
    queue: AutomationQueue
    audit_logger: AuditLogger
    sql_store: SQLStore

    def close(self) -> None:
        self.queue.shutdown()
        self.runner.shutdown()
        self.sql_store.dispose()


class Orchestrator:
    """Creates and wires runtime components for the server and CLI."""

    def __init__(self, root: Path | None = None, config: AppConfig | None = None) -> None:
        default_root = Path(__file__).resolve().parents[1]
        self.root = (root or default_root).resolve()
        self._config = config

    def build(
        self,
        broadcaster: StatusBroadcaster | None = None,
        driver: WindowAutomationDriver | None = None,
        session_gate: Any | None = None,
    ) -> RuntimeBundle:
        config = self._config or load_effective_config(self.root)
        paths = ensure_runtime_dirs(self.root, config)

        sql_store = SQLStore(paths["db_path"])
        directory = AccountDirectory(sql_store)
        settings = SettingsStore(paths["settings_dir"])
        policy = SubscriptionPolicy(
            directory=directory,
            settings_store=settings,
            admit_settings_folders=config.policy.admit_settings_folders,
        )

        audit_logger = AuditLogger(paths["audit_log_path"])
        gate = session_gate or SessionGate()
        driver = driver or ReloadSettingsDriver(config.automation)
        runner = SafeRunner(
            driver=driver,
            timeout_seconds=config.queue.run_timeout_seconds,
            audit_logger=audit_logger,
            cancel_grace_seconds=config.queue.cancel_grace_seconds,
        )
        bus = broadcaster or EventBus()
        queue = AutomationQueue(
            runner=runner,
            session_gate=gate,
            broadcaster=bus,
            gate_poll_seconds=config.queue.gate_poll_seconds,
            gate_max_wait_seconds=config.queue.gate_max_wait_seconds,
        )

        return RuntimeBundle(
            config=config,
            paths=paths,
            broadcaster=bus,
            directory=directory,
            settings=settings,
            policy=policy,
            session_gate=gate,
            driver=driver,
            runner=runner,
            queue=queue,
            audit_logger=audit_logger,
            sql_store=sql_store,
        )
