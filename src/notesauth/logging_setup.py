"""Console logging for the ``notesauth`` entry point.

Library modules only ever call ``logging.getLogger(__name__)``; this is the one
place that installs handlers, so importing the package never reconfigures an
embedding application's logging.
"""

from __future__ import annotations

import logging

from rich.logging import RichHandler

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(level: str = "INFO") -> None:
    """Route the root logger through Rich."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
