"""Core constants for the filesystem connector.

This module defines constants used throughout the application:
- User-visible message catalogue for upload and configuration errors
- Environment variable names and default locations
- POSIX permission bits managed for executable files
"""

import stat

# ============================================================================
# Message catalogue
# ============================================================================

#: Messages reported back to the host, keyed by a stable identifier.
#: Values are ``str.format`` templates.
MESSAGES: dict[str, str] = {
    "BadParameters": "Invalid parameters: a version and a commit id are required",
    "BadPath": "Path '{0}' is outside the exposed area",
    "FileSaveFailed": "Failed to save file: {0}",
    "AddFailed": "Failed to add folder: {0}",
    "RmFailed": "Failed to remove: {0}",
    "MoveFailed": "Failed to move: {0}",
    "NotFound": "No object found at '{0}'",
    "AlreadyExists": "An object already exists at '{0}'",
    "AlreadyRemoved": "Object '{0}' has already been removed",
    "NotAFile": "'{0}' is not a file",
    "NotAFolder": "'{0}' is not a folder",
    "MissingField": "Entry is missing required field '{0}'",
    "MissingContent": "Content part '{0}' was not supplied",
    "ErrorNoConfig": "No exposed path has been configured",
    "ErrorConfigIsDir": "Configuration file '{0}' is a directory",
    "ErrorBadConfig": "Configuration file '{0}' is invalid: {1}",
    "OpSuccessful": "Upload completed",
    "OpFailed": "Upload completed with {0} failed entries",
}


def get_str(key: str, *args: object) -> str:
    """Return the catalogue message for ``key`` formatted with ``args``."""
    return MESSAGES[key].format(*args)


# ============================================================================
# Configuration
# ============================================================================

#: Environment variable naming an explicit configuration file
CONFIG_PATH_ENV = "FSCONNECTOR_CONFIG"

#: Environment variable that overrides the configured exposed path
EXPOSED_PATH_ENV = "FSCONNECTOR_EXPOSED_PATH"

#: Default configuration file, relative to the working directory
DEFAULT_CONFIG_PATH = ".fsconnector/connector.json"

# ============================================================================
# Permissions
# ============================================================================

#: Executable bits toggled by the ``executable`` property
EXECUTE_BITS: int = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
