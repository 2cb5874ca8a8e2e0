"""Upload chain for serving manifest uploads and reads of a repository.

This module provides the UploadChain class that implements the connector's
repository services on top of the manifest applier: resolving the repository
path from the configuration, applying an uploaded manifest with structured
logging and optional Rich console output, and building the response the host
renders back to the client.
"""

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import structlog
from rich.console import Console
from rich.markup import escape

from fsconnector.core.applier import ApplierOptions, ManifestApplier
from fsconnector.core.config import ConnectorConfig
from fsconnector.core.constants import get_str
from fsconnector.core.errors import ConnectorError
from fsconnector.fs.manifest import ContentLookup, parse_manifest
from fsconnector.fs.tree import list_tree, read_file
from fsconnector.routes.schemas import (
    ApplierResult,
    ChangeRequest,
    EntryFailure,
    EntryResult,
    TreeEntry,
    UploadParameters,
    UploadResponse,
)

ApplierFactory = Callable[..., ManifestApplier]


class UploadChain:
    """Serves upload and read requests against configured repositories.

    Each call holds the configuration read lock only while the repository
    path is computed, never while the tree is read or modified. Callers must
    serialize uploads that target the same repository.
    """

    def __init__(
        self,
        config: ConnectorConfig,
        *,
        options: ApplierOptions | None = None,
        applier_factory: ApplierFactory = ManifestApplier,
        logger: Any = None,
        ui: Console | None = None,
    ) -> None:
        """Initialize upload chain.

        Args:
            config: Connector configuration holding the exposed path
            options: Applier policy options for every upload
            applier_factory: Builds the applier for one upload
            logger: Optional structlog logger instance
            ui: Optional Rich console for per-entry output
        """
        self._config = config
        self._options = options or ApplierOptions()
        self._applier_factory = applier_factory
        self._logger = logger or structlog.get_logger()
        self._ui = ui

    def repository_path(self, address: str) -> Path:
        """Return the repository root for a host-resolved address."""
        with self._config.read_lock():
            return self._config.repository_path(address)

    def upload(
        self,
        address: str,
        version: str,
        parameters: UploadParameters | dict[str, Any],
        manifest: str | bytes | list[Any] | Sequence[ChangeRequest],
        content: ContentLookup,
    ) -> UploadResponse:
        """Apply an uploaded manifest of changes to a repository.

        Args:
            address: Repository address, relative to the exposed path
            version: Repository version the changes apply to
            parameters: The upload's parameters part
            manifest: The manifest, raw or already parsed
            content: Lookup for the upload's content parts

        Returns:
            UploadResponse listing failed entries, if any
        """
        if not isinstance(parameters, UploadParameters):
            parameters = UploadParameters.model_validate(parameters)

        bound_logger = self._logger.bind(
            address=address,
            version=version,
            commit_id=parameters.commit_id,
        )

        try:
            root = self.repository_path(address)
            requests = self._parse(manifest)
        except ConnectorError as e:
            bound_logger.warning("upload.rejected", error=str(e), details=e.to_dict())
            return UploadResponse(status="failed", message=str(e))

        if not root.is_dir():
            message = get_str("NotFound", address)
            bound_logger.warning("upload.rejected", error=message)
            return UploadResponse(status="failed", message=message)

        applier = self._applier_factory(
            version,
            parameters,
            options=self._options,
            logger=bound_logger.bind(repository=str(root)),
        )
        result = applier.process(root, requests, content)

        if self._ui is not None:
            self._show_result(self._ui, result)

        return self.to_response(result)

    def get_file(self, address: str, file_id: str) -> bytes:
        """Return the content of a file in a repository."""
        root = self.repository_path(address)
        return read_file(root, file_id)

    def get_file_tree(
        self, address: str, folder_id: str = "", *, recursive: bool = True
    ) -> list[TreeEntry]:
        """List the files and folders of a repository."""
        root = self.repository_path(address)
        return list_tree(root, folder_id, recursive=recursive)

    @staticmethod
    def to_response(result: ApplierResult) -> UploadResponse:
        """Build the client response for an applier result."""
        failures = [
            EntryFailure(index=entry.index, error=entry.error or "")
            for entry in result.failures
        ]
        if result.error is not None:
            return UploadResponse(
                status="failed", message=result.error, failures=failures
            )
        if failures:
            return UploadResponse(
                status="failed",
                message=get_str("OpFailed", len(failures)),
                failures=failures,
            )
        return UploadResponse(status="ok", message=get_str("OpSuccessful"))

    @staticmethod
    def _parse(
        manifest: str | bytes | list[Any] | Sequence[ChangeRequest],
    ) -> list[ChangeRequest]:
        if isinstance(manifest, (str, bytes)):
            return parse_manifest(manifest)
        items = list(manifest)
        if all(isinstance(item, ChangeRequest) for item in items):
            return items
        return parse_manifest(items)

    def _show_result(self, ui: Console, result: ApplierResult) -> None:
        """Show Rich output for an applier result."""
        for entry in result.entries:
            self._show_entry(ui, entry)

        if result.error is not None:
            ui.print(f"❌ [red]REJECTED[/red] {result.error}")
        elif result.has_failures:
            ui.print(
                f"⚠️ [yellow]{len(result.failures)} of {len(result.entries)} "
                f"entries failed[/yellow]"
            )
        else:
            ui.print(
                f"✅ [green]{len(result.entries)} entries applied[/green]"
            )

    @staticmethod
    def _show_entry(ui: Console, entry: EntryResult) -> None:
        label = escape(f"#{entry.index} {entry.type.value} {entry.id}")
        if entry.ok:
            ui.print(f"✅ [green]APPLIED[/green] {label}")
        else:
            ui.print(f"❌ [red]FAILED[/red] {label} ({escape(entry.error or '')})")
