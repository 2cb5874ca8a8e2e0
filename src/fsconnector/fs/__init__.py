"""Filesystem layer for applying manifests of changes.

This package provides the primitive mutations under a repository root, the
batch-scoped resolver that tracks moved objects, manifest parsing with
content-part lookup, and read-side views of a repository tree.
"""

from fsconnector.fs.fs_ops import FilesystemMutator
from fsconnector.fs.manifest import (
    ContentLookup,
    DirectoryContentStore,
    InMemoryContentStore,
    parse_manifest,
)
from fsconnector.fs.paths import build_full_path, normalize_relative
from fsconnector.fs.resolver import PathResolver, original_path
from fsconnector.fs.tree import list_tree, read_file

__all__ = [
    "ContentLookup",
    "DirectoryContentStore",
    "FilesystemMutator",
    "InMemoryContentStore",
    "PathResolver",
    "build_full_path",
    "list_tree",
    "normalize_relative",
    "original_path",
    "parse_manifest",
    "read_file",
]
