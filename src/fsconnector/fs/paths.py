"""Path utilities for filesystem operations.

Manifest paths and ids are UNIX-style paths relative to a repository root.
This module normalizes them and confines them to the root, so that no
manifest entry can reach outside the exposed area.
"""

import os
from pathlib import Path

from fsconnector.core.errors import PathOutsideRoot


def normalize_relative(path: str) -> str:
    """Normalize a manifest path to a clean relative POSIX path.

    Leading slashes, empty segments and ``.`` segments are dropped and
    ``..`` segments are collapsed. Backslashes are treated as separators.

    Args:
        path: Relative path as supplied by the client

    Returns:
        Normalized path; the empty string denotes the root itself

    Raises:
        PathOutsideRoot: If ``..`` segments climb above the root
    """
    parts: list[str] = []
    for part in path.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                raise PathOutsideRoot(path, "")
            parts.pop()
            continue
        parts.append(part)
    return "/".join(parts)


def join_relative(parent: str, child: str) -> str:
    """Join two relative POSIX paths, tolerating an empty parent."""
    if not parent:
        return child
    if not child:
        return parent
    return f"{parent}/{child}"


def is_within(path: str, ancestor: str) -> bool:
    """Check whether relative ``path`` equals or lies below ``ancestor``."""
    if not ancestor:
        return True
    return path == ancestor or path.startswith(ancestor + "/")


def relative_suffix(path: str, ancestor: str) -> str:
    """Return the part of ``path`` below ``ancestor`` ('' when equal)."""
    if not ancestor:
        return path
    if path == ancestor:
        return ""
    return path[len(ancestor) + 1 :]


def build_full_path(root: Path | str, relative: str) -> Path:
    """Build the absolute path of a relative manifest path under ``root``.

    The check is lexical, like the path normalization of the host: symlinks
    inside the root are not followed.

    Args:
        root: Repository root directory
        relative: Path relative to the root

    Returns:
        Absolute path inside the root

    Raises:
        PathOutsideRoot: If the path escapes the root
    """
    root_path = Path(os.path.abspath(root))
    try:
        clean = normalize_relative(relative)
    except PathOutsideRoot as exc:
        raise PathOutsideRoot(relative, str(root_path)) from exc

    full = Path(os.path.normpath(root_path / clean)) if clean else root_path
    if full != root_path and root_path not in full.parents:
        raise PathOutsideRoot(relative, str(root_path))
    return full


def posix_permissions_supported() -> bool:
    """Return True on platforms with POSIX permission bits."""
    return os.name == "posix"


def ensure_parent_dir(path: Path) -> None:
    """Ensure parent directory exists for a path.

    Args:
        path: Path whose parent directory should exist

    Raises:
        OSError: If parent directory cannot be created
    """
    parent = path.parent
    if not parent.exists():
        parent.mkdir(parents=True, exist_ok=True)
