"""Debug utility for the skills installer.

Provides a single debug() function that can be toggled via the
SKILLS_DEBUG environment variable. Use it for trace output from the
filesystem layer; structured diagnostics go through structlog.

Usage:
    from skills_installer.utils.debug import debug

    debug("Staging package")
    debug(f"Copied {count} files")

Environment:
    SKILLS_DEBUG: Set to '1', 'true', 'yes' (case-insensitive) to enable
                  debug output. Any other value or unset disables it.
"""

import os
import sys
from typing import Any

# Determine if debug mode is enabled at module import time
_DEBUG_ENABLED = os.environ.get("SKILLS_DEBUG", "").lower() in (
    "1",
    "true",
    "yes",
)


def debug(msg: Any) -> None:
    """Print debug message to stderr if SKILLS_DEBUG is enabled.

    Args:
        msg: Message to print. Will be converted to string.

    Note:
        The environment variable is read at module import time. Changing
        it afterwards has no effect unless the module is reloaded.
    """
    if _DEBUG_ENABLED:
        print(f"[DEBUG] {msg}", file=sys.stderr)
