"""CLI entrypoint for the dashboard automation service."""

from __future__ import annotations

from pathlib import Path

import typer

from ui.cli import commands

app = typer.Typer(help="Bot dashboard automation service")
settings_app = typer.Typer(help="Settings file commands")
directory_app = typer.Typer(help="Account directory commands")
config_app = typer.Typer(help="Configuration commands")


@app.command("serve")
def serve_cmd(
    host: str = typer.Option(None, help="Bind address (defaults to config)"),
    port: int = typer.Option(None, help="Port (defaults to config)"),
    root: Path = typer.Option(None, help="Project root holding config/"),
) -> None:
    """Run the HTTP and WebSocket API."""
    commands.serve(host=host, port=port, root=root)


@app.command("apply")
def apply_cmd(
    identifier: str = typer.Argument(..., help="IGG ID whose settings should be reloaded"),
    skip_gate: bool = typer.Option(False, "--skip-gate", help="Do not wait for RDP to detach"),
    timeout: float = typer.Option(600.0, help="Seconds to wait for the run to finish"),
) -> None:
    """Run the reload script once for an identifier."""
    commands.apply(identifier=identifier, skip_gate=skip_gate, timeout=timeout)


@app.command("session")
def session_cmd() -> None:
    """Show the current session and whether automation may run."""
    commands.session()


@settings_app.command("show")
def settings_show_cmd(
    identifier: str,
    bank: bool = typer.Option(False, "--bank", help="Show bank settings"),
) -> None:
    """Print a settings document."""
    commands.settings_show(identifier=identifier, bank=bank)


@settings_app.command("patch")
def settings_patch_cmd(
    identifier: str,
    path: str = typer.Argument(..., help="Dotted path, e.g. gathering.enabled"),
    value: str = typer.Argument(..., help="JSON value (bare strings allowed)"),
    bank: bool = typer.Option(False, "--bank", help="Patch bank settings"),
) -> None:
    """Update one setting in place."""
    commands.settings_patch(identifier=identifier, path=path, value=value, bank=bank)


@directory_app.command("add-igg")
def directory_add_igg_cmd(
    identifier: str,
    email: str = typer.Option(None, help="Owner email; the user is created if missing"),
    label: str = typer.Option("", help="Display label"),
) -> None:
    """Register an IGG ID."""
    commands.directory_add_igg(identifier=identifier, email=email, label=label)


@directory_app.command("set-subscription")
def directory_set_subscription_cmd(
    identifier: str,
    days: int = typer.Option(30, help="Days until expiry; negative to expire"),
    status: str = typer.Option("ACTIVE"),
) -> None:
    """Set an identifier's subscription expiry."""
    commands.directory_set_subscription(identifier=identifier, days=days, status=status)


@directory_app.command("list")
def directory_list_cmd() -> None:
    """List registered IGG IDs."""
    commands.directory_list()


@config_app.command("show")
def config_show_cmd() -> None:
    """Show effective configuration."""
    commands.config_show()


app.add_typer(settings_app, name="settings")
app.add_typer(directory_app, name="directory")
app.add_typer(config_app, name="config")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
