"""CLI command for applying a manifest of changes to a directory tree."""

from __future__ import annotations

import importlib
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

if TYPE_CHECKING:  # pragma: no cover - typing only
    import typer
    from typer import Typer as TyperType
else:  # pragma: no cover - runtime fallback for typing
    typer = importlib.import_module("typer")
    TyperType = Any

import structlog
from rich.console import Console

from fsconnector.chains.upload_chain import UploadChain
from fsconnector.core.applier import ApplierOptions
from fsconnector.core.config import ConnectorConfig
from fsconnector.fs.manifest import DirectoryContentStore

app: TyperType = typer.Typer(help="Apply manifests of changes to a directory tree.")


RootOption = Annotated[
    Path,
    typer.Option("--root", help="Repository directory the changes apply to."),
]
ManifestOption = Annotated[
    Path,
    typer.Option("--manifest", help="JSON file holding the manifest array."),
]
PartsOption = Annotated[
    Path | None,
    typer.Option(
        "--parts",
        help="Directory holding one file per content part "
        "(defaults to the manifest's directory).",
    ),
]
CommitIdOption = Annotated[
    str,
    typer.Option("--commit-id", help="Identifier of the change set."),
]
VersionOption = Annotated[
    str,
    typer.Option("--version", help="Repository version the changes apply to."),
]
CommentOption = Annotated[
    str,
    typer.Option("--comment", help="Description of the change set."),
]
StopOnErrorFlag = Annotated[
    bool,
    typer.Option("--stop-on-error", help="Stop at the first failed entry."),
]
AllowOverwriteFlag = Annotated[
    bool,
    typer.Option("--allow-overwrite", help="Let 'add' replace existing files."),
]
StrictRemoveFlag = Annotated[
    bool,
    typer.Option(
        "--strict-remove", help="Treat removing a missing object as a failure."
    ),
]
JsonFlag = Annotated[
    bool,
    typer.Option("--json", help="Emit the JSON response instead of a summary."),
]


def apply_manifest(
    root: RootOption,
    manifest: ManifestOption,
    commit_id: CommitIdOption,
    parts: PartsOption = None,
    version: VersionOption = "1",
    comment: CommentOption = "",
    stop_on_error: StopOnErrorFlag = False,
    allow_overwrite: AllowOverwriteFlag = False,
    strict_remove: StrictRemoveFlag = False,
    json_output: JsonFlag = False,
) -> None:
    """Apply a manifest file to a directory and report per-entry results."""

    try:
        raw_manifest = manifest.read_bytes()
    except OSError as exc:
        typer.secho(f"Cannot read manifest: {exc}", err=True, fg=typer.colors.RED)
        raise typer.Exit(code=1) from exc

    options = ApplierOptions(
        mode="stop_on_error" if stop_on_error else "continue_on_error",
        allow_overwrite_on_add=allow_overwrite,
        tolerate_missing_remove=not strict_remove,
    )
    # The root itself is the exposed area; the repository address is empty.
    # Logs go to stderr; stdout carries only the response.
    config = ConnectorConfig(exposed_path=str(root.resolve()))
    chain = UploadChain(
        config,
        options=options,
        logger=structlog.wrap_logger(structlog.PrintLogger(sys.stderr)),
        ui=None if json_output else Console(),
    )

    response = chain.upload(
        "",
        version,
        {"commitId": commit_id, "comment": comment},
        raw_manifest,
        DirectoryContentStore(parts or manifest.parent),
    )

    if json_output:
        typer.echo(response.model_dump_json(indent=2))
    elif response.status == "ok":
        typer.secho(response.message, fg=typer.colors.GREEN)
    else:
        typer.secho(response.message, err=True, fg=typer.colors.RED)

    if response.status != "ok":
        raise typer.Exit(code=1)


def run_cli(args: Sequence[str] | None = None) -> None:
    app(args=args)


app.command("apply")(apply_manifest)
