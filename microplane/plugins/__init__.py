"""
microplane plugins package.

This package provides the format plugin architecture: hook specifications,
the explicit format registry and the built-in format implementations, using
the pluggy framework.
"""

from .formats import *
from .hookspecs import hookspec
from .plugin_manager import (
    get_global_plugin_manager,
    get_plugin_manager,
    lookup,
    lookup_writer,
    register_builtin_formats,
)

__all__ = [
    "Format",
    "Checker",
    "Parser",
    "Reader",
    "Writer",
    "IcsFormat",
    "ObfFormat",
    "hookspec",
    "hookimpl",
    "get_plugin_manager",
    "get_global_plugin_manager",
    "register_builtin_formats",
    "lookup",
    "lookup_writer",
]
