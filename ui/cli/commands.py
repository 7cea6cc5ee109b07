"""Typer command handlers."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import typer

from core.errors import DashboardError
from core.event_bus import EventBus
from core.orchestrator import Orchestrator, RuntimeBundle
from core.policy_runtime import configure_logging, load_effective_config


class _ConsoleAlwaysSafe:
    """Gate stand-in for ``apply --skip-gate``."""

    def is_safe(self) -> bool:
        return True


def _runtime(root: Path | None = None, **overrides: Any) -> RuntimeBundle:
    bundle = Orchestrator(root=root).build(**overrides)
    configure_logging(bundle.config)
    return bundle


def serve(host: str | None = None, port: int | None = None, root: Path | None = None) -> None:
    """Run the HTTP/WebSocket server until interrupted."""
    import uvicorn

    from web.app import create_app

    config = load_effective_config((root or Orchestrator().root).resolve())
    configure_logging(config)
    app = create_app(root=root)
    uvicorn.run(
        app,
        host=host or config.server.host,
        port=port or config.server.port,
        log_level=config.logging.level.lower(),
    )


def apply(identifier: str, skip_gate: bool = False, timeout: float = 600.0) -> None:
    """Queue one run in-process and wait for it to finish."""
    bus = EventBus()
    outcome: dict[str, Any] = {}

    def echo(event_name: str, payload: dict[str, Any]) -> None:
        if event_name == "automation_status":
            outcome.update(payload)
            typer.echo(f"[{payload['status']}] {payload['message']}")

    bus.subscribe(echo)
    overrides: dict[str, Any] = {"broadcaster": bus}
    if skip_gate:
        overrides["session_gate"] = _ConsoleAlwaysSafe()
    bundle = _runtime(**overrides)
    try:
        bundle.policy.admit(identifier)
        position = bundle.queue.enqueue(identifier)
        typer.echo(f"Queued {identifier} at position {position}")
        if not bundle.queue.wait_until_idle(timeout=timeout):
            typer.echo("Timed out waiting for the queue to drain.", err=True)
            raise typer.Exit(code=1)
    except DashboardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        bundle.close()
    if outcome.get("status") != "completed":
        raise typer.Exit(code=1)


def session() -> None:
    """Report what the session gate currently sees."""
    bundle = _runtime()
    try:
        try:
            name = bundle.session_gate.current_session()
        except DashboardError as exc:
            name = None
            typer.echo(f"Inspection failed: {exc}")
        typer.echo(f"Session: {name if name is not None else '(unknown)'}")
        typer.echo(f"Safe to automate: {bundle.session_gate.is_safe()}")
    finally:
        bundle.close()


def settings_show(identifier: str, bank: bool = False) -> None:
    bundle = _runtime()
    try:
        if bank:
            document = bundle.settings.read_bank_settings(identifier)
        else:
            document = bundle.settings.read_settings(identifier)
        typer.echo(json.dumps(document, indent=2))
    except DashboardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        bundle.close()


def settings_patch(identifier: str, path: str, value: str, bank: bool = False) -> None:
    """Set one dotted path; ``value`` is parsed as JSON when it can be."""
    try:
        parsed: Any = json.loads(value)
    except json.JSONDecodeError:
        parsed = value
    bundle = _runtime()
    try:
        if bank:
            bundle.settings.patch_bank(identifier, path, parsed)
        else:
            bundle.settings.patch(identifier, path, parsed)
        bundle.directory.touch_sync(identifier)
        bundle.directory.log_activity(
            "UPDATE_BANK_SETTING" if bank else "UPDATE_SETTING",
            igg_id=identifier,
            category=path.split(".")[0],
            details={"path": path, "value": parsed},
        )
        typer.echo(f"Set {path} = {json.dumps(parsed)}")
    except DashboardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        bundle.close()


def directory_add_igg(identifier: str, email: str | None = None, label: str = "") -> None:
    bundle = _runtime()
    try:
        if email:
            bundle.directory.add_user(email=email)
        record = bundle.directory.assign_igg_id(identifier, user_email=email, label=label)
        typer.echo(json.dumps(_json_safe(record), indent=2))
    except DashboardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        bundle.close()


def directory_set_subscription(identifier: str, days: int, status: str = "ACTIVE") -> None:
    """Expire the subscription ``days`` from now; negative values back-date it."""
    bundle = _runtime()
    try:
        expires_at = datetime.now(UTC) + timedelta(days=days)
        record = bundle.directory.set_subscription(identifier, expires_at, status=status)
        typer.echo(json.dumps(_json_safe(record), indent=2))
    except DashboardError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        bundle.close()


def directory_list() -> None:
    bundle = _runtime()
    try:
        typer.echo(json.dumps(_json_safe(bundle.directory.list_igg_ids()), indent=2))
    finally:
        bundle.close()


def config_show() -> None:
    """Show effective runtime config."""
    bundle = _runtime()
    try:
        typer.echo(json.dumps(_json_safe(bundle.config.model_dump()), indent=2))
    finally:
        bundle.close()


def _json_safe(payload: object) -> object:
    """Convert datetimes to strings for JSON output."""
    if isinstance(payload, dict):
        return {k: _json_safe(v) for k, v in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [_json_safe(v) for v in payload]
    if hasattr(payload, "isoformat"):
        try:
            return payload.isoformat()
        except Exception:
            return str(payload)
    return payload
