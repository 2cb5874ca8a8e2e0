"""CLI commands for connector configuration management."""

from __future__ import annotations

import importlib
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

from fsconnector.core.config import ConnectorConfig
from fsconnector.core.errors import ConfigurationError

app: TyperType = typer.Typer(help="Manage the connector configuration.")

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help="Optional override for the configuration file location.",
    ),
]
ExposedPathArgument = Annotated[
    Path,
    typer.Argument(help="Directory to expose through the connector."),
]


def _load(config_path: Path | None) -> ConnectorConfig:
    try:
        return ConnectorConfig.from_file(config_path)
    except ConfigurationError as exc:
        typer.secho(str(exc), err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc


def show(config_path: ConfigOption = None) -> None:
    """Print the configured exposed path."""

    config = _load(config_path)
    with config.read_lock():
        exposed_path = config.exposed_path

    if not exposed_path:
        typer.secho("No exposed path configured", fg=typer.colors.YELLOW)
        return
    typer.echo(f"exposedPath: {exposed_path}")


def set_path(exposed_path: ExposedPathArgument, config_path: ConfigOption = None) -> None:
    """Set the directory exposed by the connector."""

    resolved = exposed_path.expanduser().resolve()
    if not resolved.is_dir():
        typer.secho(f"Not a directory: {resolved}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1)

    config = _load(config_path)
    with config.write_lock():
        config.update(str(resolved))
    typer.secho(
        f"Exposed path set to {resolved} in {config.config_path}",
        fg=typer.colors.GREEN,
    )


app.command("show")(show)
app.command("set-path")(set_path)
