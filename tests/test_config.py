"""Effective configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.policy_runtime import (
    apply_env_overrides,
    ensure_runtime_dirs,
    load_effective_config,
    merge_dicts,
)


def _write(root: Path, name: str, text: str) -> None:
    (root / "config").mkdir(exist_ok=True)
    (root / "config" / name).write_text(text, encoding="utf-8")


def test_defaults_without_config_files(tmp_path: Path) -> None:
    config = load_effective_config(tmp_path, environ={})

    assert config.server.port == 3000
    assert config.queue.run_timeout_seconds == 120
    assert config.queue.gate_max_wait_seconds is None
    assert config.automation.window_size == (1024, 768)
    assert config.automation.popup_timeout_seconds == 10


def test_local_yaml_overrides_default(tmp_path: Path) -> None:
    _write(tmp_path, "default.yaml", "queue:\n  gate_poll_seconds: 5\n  run_timeout_seconds: 120\n")
    _write(tmp_path, "local.yaml", "queue:\n  gate_poll_seconds: 1\n")

    config = load_effective_config(tmp_path, environ={})

    assert config.queue.gate_poll_seconds == 1
    assert config.queue.run_timeout_seconds == 120


def test_environment_overrides_paths_and_port(tmp_path: Path) -> None:
    _write(tmp_path, "default.yaml", "server:\n  port: 3000\n")

    config = load_effective_config(
        tmp_path,
        environ={"CONFIG_DIR": "/srv/bot_config", "DASHBOARD_PORT": "8080"},
    )

    assert config.paths.settings_dir == "/srv/bot_config"
    assert config.server.port == 8080


def test_layout_points_parse_from_yaml(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "default.yaml",
        "automation:\n  layout:\n    functions_tab: {x: 1, y: 2, anchor: popup}\n",
    )

    layout = load_effective_config(tmp_path, environ={}).automation.layout

    assert layout.functions_tab.resolve((0, 0), (100, 100)) == (101, 102)
    assert layout.search_box.x == 994


def test_non_mapping_yaml_is_rejected(tmp_path: Path) -> None:
    _write(tmp_path, "default.yaml", "- just\n- a list\n")

    with pytest.raises(ValueError):
        load_effective_config(tmp_path, environ={})


def test_merge_and_env_helpers_do_not_mutate_input() -> None:
    base = {"a": {"b": 1, "c": 2}}
    merged = merge_dicts(base, {"a": {"c": 3}})
    overridden = apply_env_overrides(base, {"DASHBOARD_HOST": "0.0.0.0"})

    assert merged == {"a": {"b": 1, "c": 3}}
    assert overridden["server"] == {"host": "0.0.0.0"}
    assert base == {"a": {"b": 1, "c": 2}}


def test_runtime_dirs_are_created(tmp_path: Path) -> None:
    config = load_effective_config(tmp_path, environ={})

    paths = ensure_runtime_dirs(tmp_path, config)

    assert paths["db_path"].parent.is_dir()
    assert paths["audit_log_path"].parent.is_dir()
    assert paths["settings_dir"] == (tmp_path / "bot_config").resolve()


def test_shipped_default_config_is_valid() -> None:
    root = Path(__file__).resolve().parents[1]

    config = load_effective_config(root, environ={})

    assert config.automation.allow_os_automation is True
    assert config.automation.layout.functions_tab.anchor == "popup"


def test_shipped_defaults_match_model_defaults(tmp_path: Path) -> None:
    root = Path(__file__).resolve().parents[1]

    shipped = load_effective_config(root, environ={})
    builtin = load_effective_config(tmp_path, environ={})

    assert shipped.queue == builtin.queue
    assert shipped.queue.cancel_grace_seconds == 10
    assert shipped.paths == builtin.paths
    assert shipped.server.port == builtin.server.port
