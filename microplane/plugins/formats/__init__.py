"""
Format plugins for microplane.

Each format is one pluggy plugin bundling four cooperating roles: a
checker, a parser, a reader and a writer.
"""

from .base import Checker, Format, Parser, Reader, Writer, hookimpl
from .ics import IcsFormat
from .obf import ObfFormat

__all__ = [
    "Format",
    "Checker",
    "Parser",
    "Reader",
    "Writer",
    "hookimpl",
    "IcsFormat",
    "ObfFormat",
]
