"""Custom exceptions for the filesystem connector.

This module defines typed exceptions for failures that abort a whole
request. Failures of a single manifest entry are reported as strings on the
entry's result; a PathOutsideRoot raised while applying an entry becomes
that entry's error message.
"""

from typing import Any

from fsconnector.core.constants import get_str


class ConnectorError(Exception):
    """Base exception for all connector errors.

    All custom exceptions should inherit from this base class to allow
    for broad exception handling when needed.
    """

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error": "connector_error", "message": str(self)}


class ManifestError(ConnectorError):
    """Raised when an uploaded manifest cannot be interpreted as a whole.

    This covers structural problems only: a payload that is not a JSON array,
    an entry without ``index``/``type``/``id``, an unknown change type or a
    duplicated index. Such a manifest is rejected before any entry runs.

    Attributes:
        reason: Human-readable description of the problem
        index: Manifest index of the offending entry, when known
    """

    def __init__(self, reason: str, index: int | None = None) -> None:
        """Initialize ManifestError exception.

        Args:
            reason: Description of the problem
            index: Offending entry index (optional)
        """
        self.reason = reason
        self.index = index

        message = f"Invalid manifest: {reason}"
        if index is not None:
            message += f" (entry {index})"

        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses.

        Returns:
            Dictionary representation suitable for JSON responses
        """
        result: dict[str, Any] = {
            "error": "invalid_manifest",
            "reason": self.reason,
        }

        if self.index is not None:
            result["index"] = self.index

        return result

    def __repr__(self) -> str:
        """Return repr string for debugging."""
        return f"ManifestError(reason={self.reason!r}, index={self.index!r})"


class PathOutsideRoot(ConnectorError):
    """Raised when a relative path would escape the exposed root.

    Attributes:
        path: The offending path as supplied by the caller
        root: The root it was resolved against
    """

    def __init__(self, path: str, root: str) -> None:
        self.path = path
        self.root = root
        super().__init__(get_str("BadPath", path))

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {"error": "bad_path", "path": self.path}

    def __repr__(self) -> str:
        """Return repr string for debugging."""
        return f"PathOutsideRoot(path={self.path!r}, root={self.root!r})"


class ConfigurationError(ConnectorError):
    """Raised when the connector configuration is missing or unreadable.

    Attributes:
        config_path: The configuration file involved, if any
    """

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result: dict[str, Any] = {
            "error": "configuration_error",
            "message": str(self),
        }

        if self.config_path is not None:
            result["config_path"] = self.config_path

        return result
