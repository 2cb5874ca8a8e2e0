"""Primitive filesystem mutations under a repository root.

This module provides the FilesystemMutator used by the manifest applier.
Each method performs a single OS-level operation on a path relative to the
repository root. There is no rollback across calls; failures propagate as
OSError (or PathOutsideRoot for paths escaping the root) and are turned into
per-entry error messages by the caller.
"""

import os
import shutil
import stat
import tempfile
from collections.abc import Iterator
from pathlib import Path

from fsconnector.core.constants import EXECUTE_BITS
from fsconnector.fs.paths import (
    build_full_path,
    ensure_parent_dir,
    posix_permissions_supported,
)
from fsconnector.utils.debug import debug


class FilesystemMutator:
    """Performs file and folder mutations below a fixed root.

    Paths passed to every method are UNIX-style and relative to ``root``.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize the mutator.

        Args:
            root: Repository root directory. It must already exist.
        """
        self.root = Path(os.path.abspath(root))

    def full_path(self, path: str) -> Path:
        """Return the absolute path for a relative path, confined to root."""
        return build_full_path(self.root, path)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, path: str) -> bool:
        full = self.full_path(path)
        return full.exists() or full.is_symlink()

    def is_file(self, path: str) -> bool:
        return self.full_path(path).is_file()

    def is_dir(self, path: str) -> bool:
        return self.full_path(path).is_dir()

    def is_executable(self, path: str) -> bool:
        """Return True if the file has any executable bit set."""
        if not posix_permissions_supported():
            return False
        mode = self.full_path(path).stat().st_mode
        return bool(mode & EXECUTE_BITS)

    def walk(self, path: str) -> Iterator[str]:
        """Yield every descendant of a folder, relative to that folder.

        Folders are yielded before their content. Symlinked folders are not
        descended into.
        """
        top = self.full_path(path)
        for dirpath, dirnames, filenames in os.walk(top):
            dirnames.sort()
            base = Path(dirpath).relative_to(top)
            for name in dirnames + sorted(filenames):
                yield (base / name).as_posix()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_file(
        self,
        path: str,
        data: bytes,
        *,
        executable: bool = False,
        replace: bool = False,
    ) -> None:
        """Create a new file with ``data``, creating parent folders.

        Args:
            path: Relative path of the file
            data: File content
            executable: Whether to mark the file executable
            replace: Allow an existing file at ``path`` to be replaced

        Raises:
            FileExistsError: If something exists at ``path`` and replace is False
            OSError: On any other filesystem failure
        """
        full = self.full_path(path)
        if not replace and (full.exists() or full.is_symlink()):
            raise FileExistsError(f"File exists: '{path}'")

        ensure_parent_dir(full)
        self._write_atomic(full, data)
        if posix_permissions_supported():
            self._apply_mode(full, self._default_file_mode(), executable)
        debug(f"Created file: {full} (executable={executable})")

    def replace_file(
        self, path: str, data: bytes, *, executable: bool | None = None
    ) -> None:
        """Replace the content of an existing file.

        The current permission bits are retained. When ``executable`` is
        given, the executable bits are set or cleared accordingly.

        Raises:
            FileNotFoundError: If there is no file at ``path``
            OSError: On any other filesystem failure
        """
        full = self.full_path(path)
        if not full.is_file():
            raise FileNotFoundError(f"No such file: '{path}'")

        self._clear_readonly(full)
        mode = stat.S_IMODE(full.stat().st_mode)
        self._write_atomic(full, data)
        if posix_permissions_supported():
            if executable is None:
                os.chmod(full, mode)
            else:
                self._apply_mode(full, mode, executable)
        debug(f"Replaced file: {full} (executable={executable})")

    def create_directory(self, path: str) -> None:
        """Create a folder and any missing parents.

        An existing folder is left untouched.

        Raises:
            FileExistsError: If a non-folder object exists at ``path``
        """
        full = self.full_path(path)
        full.mkdir(parents=True, exist_ok=True)
        debug(f"Created folder: {full}")

    def move(self, source: str, destination: str) -> None:
        """Move a file or folder, creating the destination's parents.

        Raises:
            FileNotFoundError: If ``source`` does not exist
            FileExistsError: If ``destination`` already exists
            OSError: If ``destination`` is ``source`` or lies inside it
            OSError: On any other filesystem failure
        """
        src = self.full_path(source)
        dst = self.full_path(destination)
        if not (src.exists() or src.is_symlink()):
            raise FileNotFoundError(f"No such file or folder: '{source}'")
        if dst == src or src in dst.parents:
            raise OSError(f"Cannot move '{source}' into itself")
        if dst.exists() or dst.is_symlink():
            raise FileExistsError(f"Destination exists: '{destination}'")

        ensure_parent_dir(dst)
        # shutil.move falls back to copy + delete across devices
        shutil.move(str(src), str(dst))
        debug(f"Moved: {src} -> {dst}")

    def delete_file(self, path: str) -> None:
        full = self.full_path(path)
        self._clear_readonly(full)
        full.unlink()
        debug(f"Deleted file: {full}")

    def delete_directory(self, path: str) -> None:
        """Delete a folder and all of its content."""
        full = self.full_path(path)
        if full == self.root:
            raise PermissionError("Refusing to delete the repository root")
        shutil.rmtree(full, onexc=_clear_readonly_and_retry)
        debug(f"Deleted folder: {full}")

    def delete(self, path: str) -> None:
        """Delete a file, or a folder recursively."""
        full = self.full_path(path)
        if full.is_dir() and not full.is_symlink():
            self.delete_directory(path)
        else:
            self.delete_file(path)

    def set_executable(self, path: str, executable: bool) -> None:
        """Set or clear the executable bits; a no-op without POSIX bits."""
        if not posix_permissions_supported():
            return
        full = self.full_path(path)
        self._apply_mode(full, stat.S_IMODE(full.stat().st_mode), executable)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _write_atomic(full: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=".upload-", dir=full.parent)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, full)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    @staticmethod
    def _default_file_mode() -> int:
        # mkstemp creates 0o600; new files get the usual umask-derived mode
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask

    @staticmethod
    def _apply_mode(full: Path, mode: int, executable: bool) -> None:
        if executable:
            mode |= EXECUTE_BITS
        else:
            mode &= ~EXECUTE_BITS
        os.chmod(full, mode)

    @staticmethod
    def _clear_readonly(full: Path) -> None:
        if os.name == "nt" and full.exists():
            os.chmod(full, stat.S_IWRITE | stat.S_IREAD)


def _clear_readonly_and_retry(func, path, _exc) -> None:  # type: ignore[no-untyped-def]
    """rmtree error handler: clear a read-only attribute and retry once."""
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    func(path)
