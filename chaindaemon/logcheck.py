"""One-time warning when the package's logging is switched off."""

from __future__ import annotations

import logging
import threading

_PACKAGE_LOGGER = "chaindaemon"

_WARNING = (
    "Warning: It seems like you haven't enabled logs. In order to do so, you have to :\n"
    "    - configure logging (for example with logging.basicConfig()) at the start of your script.\n"
    "    - set the level of the 'chaindaemon' logger to INFO for standard logs."
)

_lock = threading.Lock()
_done = False


def print_if_log_disabled(logs_message: bool = True) -> bool:
    """Print a warning, once per process, if INFO logs of the package are not enabled.

    Only the first call checks anything; later calls do nothing. Returns whether the
    warning was printed.
    """
    global _done
    with _lock:
        if _done:
            return False
        _done = True
        enabled = logging.getLogger(_PACKAGE_LOGGER).isEnabledFor(logging.INFO)
        if not enabled and logs_message:
            print(_WARNING)
            return True
        return False