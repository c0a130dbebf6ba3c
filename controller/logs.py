"""
LPD8 → OBS controller — logging setup.

All diagnostic output goes to stderr; stdout stays free for the
"press [ENTER] to quit" prompt.
"""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s.%(msecs)03d " "[%(name)s] %(levelname)s " "%(message)s"
_LOG_DATE_FORMAT = "%H:%M:%S"


def configure_logging(level: int | str = logging.INFO) -> None:
    """
    Configure root logger to write structured output to stderr.

    Args:
        level: Python logging level or level name (default: INFO)

    Raises:
        ValueError: If ``level`` is an unknown level name.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level {level!r}")
        level = resolved

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # websocket-client logs every frame at DEBUG and reconnect noise at INFO
    logging.getLogger("websocket").setLevel(logging.WARNING)
