"""Manifest change applier.

Applies an uploaded manifest of changes (add, addFolder, revise, move,
remove) to a repository directory tree, one entry at a time and in manifest
order. Later entries see the effects of earlier ones: a revise or remove
naming an object that was moved earlier in the batch is applied at the
object's new location.

Each entry succeeds or fails on its own. A failed entry is reported with its
manifest index and does not undo or block the other entries. Only a failed
``initialize()`` rejects the batch as a whole.

Subclasses can override the ``process_*`` handlers, or the lower-level
``save_file``/``add_new_folder``/``move_path``/``delete_path`` hooks, to
target something other than a plain directory tree. Overriding a handler
means taking care of combined changes (e.g. move + revise of one object)
through the resolver.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, assert_never

import structlog

from fsconnector.core.constants import get_str
from fsconnector.fs.fs_ops import FilesystemMutator
from fsconnector.fs.manifest import ContentLookup
from fsconnector.fs.paths import normalize_relative
from fsconnector.fs.resolver import DefaultResolution, PathResolver, original_path
from fsconnector.routes.schemas import (
    ApplierResult,
    ChangeProperties,
    ChangeRequest,
    ChangeType,
    EntryResult,
    UploadParameters,
)

Mode = Literal["continue_on_error", "stop_on_error"]


@dataclass
class ApplierOptions:
    """Policy options for applying a manifest.

    Attributes:
        mode: 'continue_on_error' attempts every entry; 'stop_on_error' ends
            the batch at the first failed entry
        allow_overwrite_on_add: Let an add replace an existing file
        tolerate_missing_remove: Treat removing a missing object as success
    """

    mode: Mode = "continue_on_error"
    allow_overwrite_on_add: bool = False
    tolerate_missing_remove: bool = True


class ManifestApplier:
    """Applies a manifest of changes to a directory tree.

    One instance handles one upload: it is constructed with the version and
    parameters of the upload and then ``process()`` is called once.
    """

    def __init__(
        self,
        version: str,
        parameters: UploadParameters,
        *,
        options: ApplierOptions | None = None,
        mutator_factory: type[FilesystemMutator] = FilesystemMutator,
        default_resolution: DefaultResolution = original_path,
        logger: Any = None,
    ) -> None:
        """Initialize the applier.

        Args:
            version: Repository version the changes apply to
            parameters: The upload's parameters part
            options: Policy options (defaults apply when omitted)
            mutator_factory: Builds the filesystem mutator for the target root
            default_resolution: Maps an id to its original relative path
            logger: Optional structlog logger instance
        """
        self.version = version
        self.parameters = parameters
        self.options = options or ApplierOptions()
        self._mutator_factory = mutator_factory
        self._default_resolution = default_resolution
        self._logger = logger or structlog.get_logger()

        self._mutator: FilesystemMutator | None = None
        self._resolver: PathResolver | None = None
        self._content: ContentLookup | None = None

    @property
    def mutator(self) -> FilesystemMutator:
        if self._mutator is None:
            raise RuntimeError("mutator is only available during process()")
        return self._mutator

    @property
    def resolver(self) -> PathResolver:
        if self._resolver is None:
            raise RuntimeError("resolver is only available during process()")
        return self._resolver

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    def process(
        self,
        target_root: Path | str,
        manifest: Sequence[ChangeRequest],
        content: ContentLookup,
    ) -> ApplierResult:
        """Apply every manifest entry to ``target_root``.

        Args:
            target_root: Repository root directory
            manifest: Change requests in manifest order
            content: Lookup for the content parts named by entries

        Returns:
            ApplierResult with one EntryResult per attempted entry
        """
        self._mutator = self._mutator_factory(target_root)
        self._resolver = PathResolver(self._default_resolution)
        self._content = content

        log = self._logger.bind(
            root=str(target_root),
            version=self.version,
            commit_id=self.parameters.commit_id,
        )

        entries: list[EntryResult] = []
        completed = False
        has_failures = False

        try:
            error = self._run_hook(self.initialize)
            if error is not None:
                has_failures = True
                log.warning("upload.rejected", error=error)
            else:
                for request in manifest:
                    outcome = self._apply_entry(request)
                    entries.append(outcome)
                    log.info(
                        "upload.entry",
                        index=outcome.index,
                        type=outcome.type.value,
                        id=outcome.id,
                        ok=outcome.ok,
                        error=outcome.error,
                    )
                    if not outcome.ok:
                        has_failures = True
                        if self.options.mode == "stop_on_error":
                            break
                completed = len(entries) == len(manifest)

            finish_error = self._run_hook(
                lambda: self.finish(completed, has_failures)
            )
            if finish_error is not None and error is None:
                error = finish_error
                has_failures = True

            result = ApplierResult(
                entries=entries,
                completed=completed,
                has_failures=has_failures,
                error=error,
            )
            log.info(
                "upload.summary",
                total_items=len(manifest),
                attempted=len(entries),
                failed_count=len(result.failures),
                completed=completed,
                has_failures=has_failures,
                error=error,
            )
            return result
        finally:
            self._mutator = None
            self._resolver = None
            self._content = None

    def initialize(self) -> str | None:
        """Check batch-level preconditions before any entry runs.

        Returns:
            An error message to reject the whole batch, else None
        """
        if not self.version.strip() or not self.parameters.commit_id.strip():
            return get_str("BadParameters")
        return None

    def finish(self, completed: bool, has_failures: bool) -> str | None:
        """Hook run after the entries, whatever their outcome.

        Args:
            completed: Every entry was attempted
            has_failures: Some entry (or initialization) failed

        Returns:
            An error message to report for the batch, else None
        """
        return None

    @staticmethod
    def _run_hook(hook: Any) -> str | None:
        try:
            return hook()
        except Exception as e:
            return str(e) or type(e).__name__

    def _apply_entry(self, request: ChangeRequest) -> EntryResult:
        try:
            error = self._dispatch(request)
        except Exception as e:
            error = str(e) or type(e).__name__

        return EntryResult(
            index=request.index,
            type=request.type,
            id=request.id,
            ok=error is None,
            error=error,
        )

    def _dispatch(self, request: ChangeRequest) -> str | None:
        match request.type:
            case ChangeType.ADD:
                return self.process_add(request)
            case ChangeType.ADD_FOLDER:
                return self.process_add_folder(request)
            case ChangeType.REVISE:
                return self.process_revise(request)
            case ChangeType.MOVE:
                return self.process_move(request)
            case ChangeType.REMOVE:
                return self.process_remove(request)
            case _:
                assert_never(request.type)

    # ------------------------------------------------------------------
    # Entry handlers
    # ------------------------------------------------------------------

    def process_add(self, request: ChangeRequest) -> str | None:
        """Add a new file at the entry's ``path``."""
        if not request.path:
            return get_str("MissingField", "path")
        if not request.content_part:
            return get_str("MissingField", "content")

        # New objects are placed at the literal path, not through the resolver
        path = normalize_relative(request.path)
        if self.mutator.exists(path) and not self.options.allow_overwrite_on_add:
            return get_str("AlreadyExists", path)

        error = self.save_file(request, path, replace=False)
        if error is None:
            self.resolver.clear_removed(request.id)
            self.resolver.record_move(request.id, path)
        return error

    def process_add_folder(self, request: ChangeRequest) -> str | None:
        """Create a folder; an existing folder is not an error."""
        path = normalize_relative(request.path or request.id)
        if self.mutator.exists(path) and not self.mutator.is_dir(path):
            return get_str("NotAFolder", path)

        error = self.add_new_folder(path, request.properties)
        if error is None:
            self.resolver.clear_removed(request.id)
            self.resolver.record_move(request.id, path)
        return error

    def process_revise(self, request: ChangeRequest) -> str | None:
        """Replace the content of an existing file, wherever it now is."""
        if not request.content_part:
            return get_str("MissingField", "content")
        if self.resolver.is_removed(request.id):
            return get_str("AlreadyRemoved", request.id)

        path = self.resolver.resolve(request.id)
        if not self.mutator.exists(path):
            return get_str("NotFound", path)
        if not self.mutator.is_file(path):
            return get_str("NotAFile", path)

        return self.save_file(request, path, replace=True)

    def process_move(self, request: ChangeRequest) -> str | None:
        """Move a file or folder to the entry's ``destination``."""
        if not request.destination:
            return get_str("MissingField", "destination")
        if self.resolver.is_removed(request.id):
            return get_str("AlreadyRemoved", request.id)

        source = self.resolver.resolve(request.id)
        # The destination is final; it is never resolved through earlier moves
        destination = normalize_relative(request.destination)
        if not self.mutator.exists(source):
            return get_str("NotFound", source)
        if source == destination:
            return None
        if self.mutator.exists(destination):
            return get_str("AlreadyExists", destination)

        return self.move_path(request.id, source, destination)

    def process_remove(self, request: ChangeRequest) -> str | None:
        """Remove a file, or a folder and all of its content."""
        tolerate = self.options.tolerate_missing_remove
        if self.resolver.is_removed(request.id):
            return None if tolerate else get_str("AlreadyRemoved", request.id)

        path = self.resolver.resolve(request.id)
        if not self.mutator.exists(path):
            if tolerate:
                self.resolver.mark_removed(request.id)
                return None
            return get_str("NotFound", path)

        error = self.delete_path(path)
        if error is None:
            self.resolver.mark_removed(request.id, path)
        return error

    # ------------------------------------------------------------------
    # Storage hooks
    # ------------------------------------------------------------------

    def save_file(
        self, request: ChangeRequest, path: str, replace: bool
    ) -> str | None:
        """Write the entry's content part to ``path``.

        Args:
            request: The add or revise entry
            path: Relative path to write, already resolved
            replace: True for a revise of an existing file, whose permission
                bits are kept unless ``executable`` is given

        Returns:
            An error message, else None
        """
        part = request.content_part or ""
        try:
            data = self._content_part(part)
        except KeyError:
            return get_str("MissingContent", part)

        try:
            if replace:
                self.mutator.replace_file(path, data, executable=request.executable)
            else:
                self.mutator.create_file(
                    path,
                    data,
                    executable=bool(request.executable),
                    replace=self.options.allow_overwrite_on_add,
                )
        except OSError as e:
            return get_str("FileSaveFailed", e)
        return None

    def add_new_folder(
        self, path: str, properties: ChangeProperties | None
    ) -> str | None:
        """Create the folder at ``path``; returns an error message or None.

        Executable bits are only ever added to a folder, never cleared.
        """
        try:
            self.mutator.create_directory(path)
            if properties is not None and properties.executable:
                self.mutator.set_executable(path, True)
        except OSError as e:
            return get_str("AddFailed", e)
        return None

    def move_path(self, object_id: str, source: str, destination: str) -> str | None:
        """Move ``source`` to ``destination`` and record the move.

        For a folder, every object inside it is recorded as moved too, so that
        later entries naming those objects by their original ids find them.

        Args:
            object_id: Id of the moved object
            source: Where the object is now (after earlier moves)
            destination: Where it is moved to
        """
        is_folder = self.mutator.is_dir(source)
        try:
            self.mutator.move(source, destination)
        except OSError as e:
            return get_str("MoveFailed", e)

        if is_folder:
            self.resolver.record_folder_move(
                object_id, source, destination, self.mutator.walk(destination)
            )
        else:
            self.resolver.record_move(object_id, destination)
        return None

    def delete_path(self, path: str) -> str | None:
        """Delete the file or folder at ``path``; returns an error or None."""
        try:
            self.mutator.delete(path)
        except OSError as e:
            return get_str("RmFailed", e)
        return None

    def _content_part(self, name: str) -> bytes:
        if self._content is None:
            raise RuntimeError("content is only available during process()")
        return self._content.get(name)
