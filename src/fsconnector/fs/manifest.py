"""Manifest parsing and content-part lookup.

An upload carries a JSON manifest (an array of change requests) plus named
binary parts holding file content. This module turns the manifest into
validated ChangeRequest models and provides the stores the applier reads
content parts from.
"""

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from fsconnector.core.errors import ManifestError
from fsconnector.routes.schemas import ChangeRequest
from fsconnector.utils.debug import debug


class ContentLookup(Protocol):
    """Source of content parts referenced by manifest entries."""

    def get(self, name: str) -> bytes:
        """Return the bytes of part ``name``; raise KeyError if absent."""
        ...


class InMemoryContentStore:
    """Content parts held in memory, keyed by part name."""

    def __init__(self, parts: Mapping[str, bytes] | None = None) -> None:
        self._parts: dict[str, bytes] = dict(parts or {})

    def add(self, name: str, data: bytes) -> None:
        self._parts[name] = data

    def get(self, name: str) -> bytes:
        return self._parts[name]

    def __contains__(self, name: object) -> bool:
        return name in self._parts

    def __len__(self) -> int:
        return len(self._parts)


class DirectoryContentStore:
    """Content parts stored as files in a directory, one file per part.

    This is how a multipart decoder that spools parts to disk hands them
    over. Part names map directly to file names inside ``directory``.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    def get(self, name: str) -> bytes:
        candidate = self.directory / name
        # Part names must not reach outside the spool directory
        if candidate.parent != self.directory or not candidate.is_file():
            raise KeyError(name)
        return candidate.read_bytes()


def parse_manifest(raw: str | bytes | list[Any]) -> list[ChangeRequest]:
    """Parse and validate an uploaded manifest.

    Args:
        raw: The manifest as JSON text/bytes, or an already-decoded list

    Returns:
        Change requests in manifest order

    Raises:
        ManifestError: If the manifest is not a JSON array, an entry is
            malformed, or two entries share an index
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError as e:
            # JSONDecodeError, or UnicodeDecodeError for undecodable bytes
            raise ManifestError(f"not valid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, list):
        raise ManifestError("expected a JSON array of change requests")

    requests: list[ChangeRequest] = []
    seen: set[int] = set()
    for position, entry in enumerate(data):
        index = entry.get("index") if isinstance(entry, dict) else None
        try:
            request = ChangeRequest.model_validate(entry)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in err['loc']) or 'entry'}: {err['msg']}"
                for err in e.errors()
            )
            raise ManifestError(
                f"entry at position {position} is malformed: {problems}",
                index=index if isinstance(index, int) else None,
            ) from e

        if request.index in seen:
            raise ManifestError("duplicate index", index=request.index)
        seen.add(request.index)
        requests.append(request)

    debug(f"Parsed manifest with {len(requests)} entries")
    return requests
