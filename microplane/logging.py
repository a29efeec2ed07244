"""
Log records emitted while microplane identifies, parses, reads and writes files.

Every module logs through a child of the ``microplane`` logger, which
carries a ``NullHandler`` so nothing is printed unless the application asks
for it. The levels are used as follows:

- DEBUG: parse progress, such as companion file resolution, ICS header
  reading, OBF stack records, gzip decisions and zlib decoder restarts
- INFO: files opened and closed by :func:`microplane.open_image`, and
  files created by :func:`microplane.create_writer`
- WARNING: anomalies the readers tolerate, such as an unparseable
  acquisition date, a gzip tag on a raw payload or a malformed annotation

To watch a parse from a script:
    >>> from microplane.logging import configure_logging
    >>> configure_logging("DEBUG")
    >>> open_image("cells.ics")  # doctest: +SKIP

Applications with their own logging setup only need to set the level of
the ``microplane`` logger; records propagate to the root logger as usual.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

LIBRARY_LOGGER_NAME = "microplane"

DEFAULT_FORMAT = "%(levelname)s %(name)s: %(message)s"

# Handler installed by configure_logging, replaced on the next call
_installed: Optional[logging.Handler] = None


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the logger a microplane module writes to.

    Module names already under ``microplane`` are used as they are; any
    other name (a third-party format plugin, say) is placed below the
    library logger so one level setting covers it.

    Args:
        name: Usually ``__name__``; ``None`` gives the library logger itself
    """
    if name is None:
        return logging.getLogger(LIBRARY_LOGGER_NAME)
    if name == LIBRARY_LOGGER_NAME or name.startswith(LIBRARY_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LIBRARY_LOGGER_NAME}.{name}")


def configure_logging(
    level: Union[int, str] = logging.INFO,
    format_string: str = DEFAULT_FORMAT,
    handler: Optional[logging.Handler] = None,
    stream: Optional[object] = None,
) -> logging.Handler:
    """
    Print microplane's records, for scripts and interactive sessions.

    Calling it again swaps the handler it installed before. Handlers added
    by the application itself are left alone.

    Args:
        level: Level name or number, e.g. ``"DEBUG"`` to trace parsing
        format_string: Format used when ``handler`` has no formatter
        handler: Handler to install (default: a stream handler)
        stream: Stream for the default handler (default: ``sys.stderr``)

    Returns:
        The installed handler
    """
    global _installed

    if isinstance(level, str):
        name = level.upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"Unknown logging level {name!r}")

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
    if handler.formatter is None:
        handler.setFormatter(logging.Formatter(format_string))

    logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    if _installed is not None:
        logger.removeHandler(_installed)
    logger.addHandler(handler)
    logger.setLevel(level)
    _installed = handler
    return handler


def reset_logging() -> None:
    """Undo :func:`configure_logging`: drop its handler and the level."""
    global _installed

    logger = logging.getLogger(LIBRARY_LOGGER_NAME)
    if _installed is not None:
        logger.removeHandler(_installed)
        _installed = None
    logger.setLevel(logging.NOTSET)


logging.getLogger(LIBRARY_LOGGER_NAME).addHandler(logging.NullHandler())
