"""Configuration and runtime bootstrapping."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from os_controller.script_layout import AutomationConfig

ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CONFIG_DIR": ("paths", "settings_dir"),
    "DASHBOARD_DB_PATH": ("paths", "db_path"),
    "DASHBOARD_AUDIT_LOG": ("paths", "audit_log_path"),
    "DASHBOARD_HOST": ("server", "host"),
    "DASHBOARD_PORT": ("server", "port"),
    "DASHBOARD_LOG_LEVEL": ("logging", "level"),
}


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])


class PathsConfig(BaseModel):
    settings_dir: str = "bot_config"
    db_path: str = "workspace/dashboard.db"
    audit_log_path: str = "logs/automation_audit.jsonl"


class QueueConfig(BaseModel):
    gate_poll_seconds: float = 5.0
    run_timeout_seconds: float = 120.0
    # None waits for the remote session to detach indefinitely.
    gate_max_wait_seconds: float | None = None
    # How long a timed-out run may take to notice cancellation.
    cancel_grace_seconds: float = 10.0


class PolicyConfig(BaseModel):
    admit_settings_folders: bool = True


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class AppConfig(BaseModel):
    """Validated effective configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    automation: AutomationConfig = Field(default_factory=AutomationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML from file, returning empty mapping when missing."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a mapping: {path}")
    return data


def merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge dictionaries."""
    merged: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(config: dict[str, Any], environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Overlay selected environment variables onto the raw config mapping."""
    env = os.environ if environ is None else environ
    result = dict(config)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            result[section] = merge_dicts(result.get(section, {}) or {}, {key: value})
    return result


def load_effective_config(root: Path, environ: dict[str, str] | None = None) -> AppConfig:
    """Load ``config/default.yaml`` plus ``config/local.yaml`` and the environment."""
    config_dir = root / "config"
    merged = merge_dicts(load_yaml(config_dir / "default.yaml"), load_yaml(config_dir / "local.yaml"))
    return AppConfig.model_validate(apply_env_overrides(merged, environ))


def ensure_runtime_dirs(root: Path, config: AppConfig) -> dict[str, Path]:
    """Ensure database and log directories exist and return resolved paths."""
    settings_dir = (root / config.paths.settings_dir).resolve()
    db_path = (root / config.paths.db_path).resolve()
    audit_log_path = (root / config.paths.audit_log_path).resolve()

    db_path.parent.mkdir(parents=True, exist_ok=True)
    audit_log_path.parent.mkdir(parents=True, exist_ok=True)

    return {
        "settings_dir": settings_dir,
        "db_path": db_path,
        "audit_log_path": audit_log_path,
    }


def configure_logging(config: AppConfig) -> None:
    """Install the root handler once per process."""
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format,
        datefmt="%H:%M:%S",
    )
