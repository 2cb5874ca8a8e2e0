"""Batch-scoped identity tracking for manifest entries.

Manifest entries name objects by id, which by default is the object's
original relative path. Once a move has been applied within a batch, the id
no longer matches the object's location; the PathResolver keeps the move
records needed to find it again. A resolver lives for one batch only.
"""

from collections.abc import Callable, Iterable, Mapping
from types import MappingProxyType

from fsconnector.fs.paths import (
    is_within,
    join_relative,
    normalize_relative,
    relative_suffix,
)

DefaultResolution = Callable[[str], str]


def original_path(object_id: str) -> str:
    """Default id scheme: the id is the object's original relative path."""
    return normalize_relative(object_id)


class PathResolver:
    """Maps manifest ids to their current relative paths.

    Resolution order for an id:
    1. A direct move record for the id.
    2. The nearest ancestor id with a move record (a file inside a moved
       folder), giving ``ancestor_path + suffix``.
    3. The default resolution of the id.

    Resolving is side-effect free, so resolving the same id twice without
    an intervening move returns the same path.
    """

    def __init__(self, default_resolution: DefaultResolution = original_path) -> None:
        self._default_resolution = default_resolution
        self._records: dict[str, str] = {}
        self._removed: set[str] = set()

    @property
    def records(self) -> Mapping[str, str]:
        """Read-only view of the move records (id -> current path)."""
        return MappingProxyType(self._records)

    def resolve(self, object_id: str) -> str:
        key = self._key(object_id)
        if key in self._records:
            return self._records[key]

        ancestor = self._nearest_recorded_ancestor(key)
        if ancestor is not None:
            return join_relative(
                self._records[ancestor], relative_suffix(key, ancestor)
            )

        return normalize_relative(self._default_resolution(object_id))

    def record_move(self, object_id: str, new_path: str) -> None:
        """Record that ``object_id`` now lives at ``new_path``."""
        self._records[self._key(object_id)] = normalize_relative(new_path)

    def record_folder_move(
        self,
        object_id: str,
        old_path: str,
        new_path: str,
        descendants: Iterable[str],
    ) -> None:
        """Record the move of a folder and everything inside it.

        Records for objects that had already been moved into the folder
        earlier in the batch are rewritten to follow the folder. Every other
        descendant gets a record keyed by its original id, derived from the
        folder's id and its path relative to the folder.

        Args:
            object_id: Id of the moved folder
            old_path: Relative path the folder was moved from
            new_path: Relative path the folder was moved to
            descendants: Descendant paths relative to the folder
        """
        key = self._key(object_id)
        old_path = normalize_relative(old_path)
        new_path = normalize_relative(new_path)

        claimed: set[str] = set()
        for other, current in list(self._records.items()):
            if other != key and is_within(current, old_path):
                moved = join_relative(new_path, relative_suffix(current, old_path))
                self._records[other] = moved
                claimed.add(moved)

        self._records[key] = new_path
        for relative in descendants:
            descendant_id = join_relative(key, normalize_relative(relative))
            descendant_path = join_relative(new_path, normalize_relative(relative))
            if descendant_id in self._records or descendant_path in claimed:
                continue
            self._records[descendant_id] = descendant_path

    def mark_removed(self, object_id: str, path: str | None = None) -> None:
        """Remember that ``object_id`` (and anything below it) was removed.

        When ``path`` is given, objects moved into that location earlier in
        the batch are marked removed as well.
        """
        key = self._key(object_id)
        self._removed.add(key)
        self._records.pop(key, None)
        if path is None:
            return

        path = normalize_relative(path)
        for other, current in list(self._records.items()):
            if is_within(current, path):
                del self._records[other]
                self._removed.add(other)

    def clear_removed(self, object_id: str) -> None:
        """Forget a removal, e.g. when the id is added again."""
        self._removed.discard(self._key(object_id))

    def is_removed(self, object_id: str) -> bool:
        """Return True if the id or one of its ancestor ids was removed."""
        key = self._key(object_id)
        if key in self._records:
            return False
        return any(is_within(key, removed) for removed in self._removed)

    def _nearest_recorded_ancestor(self, key: str) -> str | None:
        best: str | None = None
        for recorded in self._records:
            if recorded != key and recorded and is_within(key, recorded):
                if best is None or len(recorded) > len(best):
                    best = recorded
        return best

    @staticmethod
    def _key(object_id: str) -> str:
        return normalize_relative(object_id)
