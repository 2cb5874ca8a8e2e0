"""Debug utility for the filesystem connector.

Provides a single debug() function that can be toggled via the
FSCONNECTOR_DEBUG environment variable. Used for low-level tracing of
filesystem mutations, where structured logging would be too noisy.

Usage:
    from fsconnector.utils.debug import debug

    debug(f"Moved {source} -> {destination}")

Environment:
    FSCONNECTOR_DEBUG: Set to '1', 'true', 'yes' (case-insensitive) to enable
                       debug output. Any other value or unset disables it.
"""

import os
import sys
from typing import Any

# Determine if debug mode is enabled at module import time
_DEBUG_ENABLED = os.environ.get("FSCONNECTOR_DEBUG", "").lower() in (
    "1",
    "true",
    "yes",
)


def debug(msg: Any) -> None:
    """Print debug message if FSCONNECTOR_DEBUG is enabled.

    Args:
        msg: Message to print. Will be converted to string.

    Note:
        The environment variable is read at module import time. Changing it
        afterwards has no effect unless the module is reloaded.
    """
    if _DEBUG_ENABLED:
        print(f"[DEBUG] {msg}", file=sys.stdout)
