import logging
import os
import sys
from typing import Hashable, Optional, Set, TextIO, Tuple


_RESET = "\x1b[0m"
_COLORS = {
    logging.DEBUG: "\x1b[36m",   # cyan
    logging.INFO: "\x1b[32m",    # green
    logging.WARNING: "\x1b[33m", # yellow
    logging.ERROR: "\x1b[31m",   # red
    logging.CRITICAL: "\x1b[91m", # bright red
}

PACKAGE_LOGGER = "scenesync"


class ColorFormatter(logging.Formatter):
    """Level-colored formatter; the sync thread name is shown in debug mode."""

    def __init__(self, debug: bool = False, stream: Optional[TextIO] = None):
        fmt = (
            "%(asctime)s | %(levelname)s | %(name)s"
            + (" | %(threadName)s" if debug else "")
            + " | %(message)s"
        )
        super().__init__(fmt=fmt, datefmt="%H:%M:%S")
        self.debug = debug
        self.stream = stream or sys.stderr

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        color = _COLORS.get(record.levelno)
        if color and _supports_color(self.stream):
            msg = msg.replace(record.levelname, f"{color}{record.levelname}{_RESET}", 1)
        return msg


def _supports_color(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty()) and os.environ.get("NO_COLOR") is None


class OnceFilter(logging.Filter):
    """
    Drops repeats of a record that carries a `once` key in `extra`.

    Used for per-stream warnings (unknown joint names, repeated malformed
    messages) that would otherwise fire on every frame.
    """

    def __init__(self) -> None:
        super().__init__()
        self._seen: Set[Tuple[str, Hashable]] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        key = getattr(record, "once", None)
        if key is None:
            return True
        marker = (record.name, key)
        if marker in self._seen:
            return False
        self._seen.add(marker)
        return True

    def reset(self) -> None:
        self._seen.clear()


_handler: Optional[logging.Handler] = None


def setup_logging(debug: bool = False, stream: Optional[TextIO] = None,
                  quiet_sync: bool = False) -> logging.Logger:
    """Install the colored handler on the package logger once and return it.

    Output goes to stderr by default so the replay tool can keep stdout for
    message dumps. `quiet_sync` hides per-pass synchronizer chatter.
    """
    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    level = logging.DEBUG if debug else logging.INFO
    stream = stream or sys.stderr

    if _handler is None:
        _handler = logging.StreamHandler(stream=stream)
        logger.addHandler(_handler)
    else:
        _handler.setStream(stream)
    _handler.setFormatter(ColorFormatter(debug=debug, stream=stream))

    logger.setLevel(level)
    logging.getLogger(f"{PACKAGE_LOGGER}.synchronizer").setLevel(logging.WARNING if quiet_sync else logging.NOTSET)
    logger.debug("Logging initialized (debug=%s)", debug)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a package logger with the once-filter attached."""
    logger = logging.getLogger(f"{PACKAGE_LOGGER}.{name}" if name else PACKAGE_LOGGER)
    if not any(isinstance(f, OnceFilter) for f in logger.filters):
        logger.addFilter(OnceFilter())
    return logger


__all__ = ["ColorFormatter", "OnceFilter", "setup_logging", "get_logger", "PACKAGE_LOGGER"]
