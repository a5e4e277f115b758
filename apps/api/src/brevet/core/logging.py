"""
Logging Configuration

Standard-library logging setup shared by the API process and the background
scheduler. Modules log through logging.getLogger(__name__); job and auth code
attaches structured fields with ``extra=``.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_HANDLER_NAME = "brevet-stream"


def configure_logging(level: str = "INFO") -> None:
    """
    Install the process-wide log handler.

    Safe to call more than once; the handler is only added the first time.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR)
    """
    root = logging.getLogger()
    root.setLevel(level.upper())

    if any(handler.get_name() == _HANDLER_NAME for handler in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    # APScheduler logs every firing at INFO; keep it at WARNING unless debugging
    if level.upper() != "DEBUG":
        logging.getLogger("apscheduler").setLevel(logging.WARNING)
