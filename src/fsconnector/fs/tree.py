"""Read-side views of a repository tree.

Used by the getFile and getFileTree services. Ids reported here are the
relative paths from the repository root, which is the id scheme the manifest
applier resolves by default.
"""

from pathlib import Path

from fsconnector.core.constants import EXECUTE_BITS
from fsconnector.fs.paths import build_full_path, posix_permissions_supported
from fsconnector.routes.schemas import TreeEntry


def read_file(root: Path | str, file_id: str) -> bytes:
    """Return the content of the file ``file_id`` under ``root``.

    Raises:
        PathOutsideRoot: If the id escapes the root
        FileNotFoundError: If there is no such file
        IsADirectoryError: If the id names a folder
    """
    full = build_full_path(root, file_id)
    if full.is_dir():
        raise IsADirectoryError(f"'{file_id}' is a folder")
    return full.read_bytes()


def list_tree(
    root: Path | str, folder_id: str = "", *, recursive: bool = True
) -> list[TreeEntry]:
    """List the objects below a folder.

    Args:
        root: Repository root directory
        folder_id: Folder to list, relative to root ('' for the root)
        recursive: Include the content of sub-folders

    Returns:
        Entries sorted by id; folders precede their content

    Raises:
        PathOutsideRoot: If the id escapes the root
        NotADirectoryError: If the id does not name a folder
    """
    root_path = build_full_path(root, "")
    top = build_full_path(root, folder_id)
    if not top.is_dir():
        raise NotADirectoryError(f"'{folder_id}' is not a folder")

    entries: list[TreeEntry] = []
    pending = [top]
    while pending:
        folder = pending.pop()
        for child in sorted(folder.iterdir()):
            object_id = child.relative_to(root_path).as_posix()
            if child.is_dir() and not child.is_symlink():
                entries.append(TreeEntry(id=object_id, name=child.name, type="folder"))
                if recursive:
                    pending.append(child)
                continue

            info = child.lstat() if child.is_symlink() else child.stat()
            executable = posix_permissions_supported() and bool(
                info.st_mode & EXECUTE_BITS
            )
            entries.append(
                TreeEntry(
                    id=object_id,
                    name=child.name,
                    type="file",
                    size=info.st_size,
                    executable=executable,
                )
            )

    entries.sort(key=lambda entry: entry.id)
    return entries
