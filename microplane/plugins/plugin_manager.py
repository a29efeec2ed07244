"""
Format registry for microplane.

The registry is an explicit pluggy plugin manager: the built-in formats are
registered when the global manager is first created, and applications may
register additional format plugins themselves. Nothing registers itself on
import.
"""

from __future__ import annotations

import os
from typing import Optional

import pluggy

from ..config import IOSettings
from ..errors import UnsupportedFormatError
from ..logging import get_logger
from ..stream import RandomAccessStream
from . import hookspecs

logger = get_logger(__name__)


def get_plugin_manager() -> pluggy.PluginManager:
    """
    Create an empty microplane plugin manager.

    Returns:
        PluginManager instance configured with the microplane hook specs
    """
    pm = pluggy.PluginManager("microplane")
    pm.add_hookspecs(hookspecs)
    return pm


def register_builtin_formats(
    pm: pluggy.PluginManager, settings: Optional[IOSettings] = None
) -> pluggy.PluginManager:
    """
    Register the formats shipped with microplane on ``pm``.

    Args:
        pm: Plugin manager to populate
        settings: Settings handed to every format plugin

    Returns:
        The same plugin manager
    """
    from .formats import IcsFormat, ObfFormat

    for plugin in (IcsFormat(settings), ObfFormat(settings)):
        pm.register(plugin, name=plugin.name)
    return pm


# Global plugin manager instance
_plugin_manager = None


def get_global_plugin_manager() -> pluggy.PluginManager:
    """
    Get the global plugin manager instance, holding the built-in formats.

    Returns:
        Global PluginManager instance
    """
    global _plugin_manager
    if _plugin_manager is None:
        _plugin_manager = register_builtin_formats(get_plugin_manager())
    return _plugin_manager


def lookup(path, stream: Optional[RandomAccessStream] = None, pm=None):
    """
    Find the format plugin able to read ``path``.

    Args:
        path: Path of the file to identify
        stream: Optional stream over the file content; opened from ``path``
            when a content check is needed and none is given
        pm: Plugin manager to consult (default: the global manager)

    Returns:
        The matching format plugin

    Raises:
        UnsupportedFormatError: If no registered format accepts the file
    """
    pm = pm or get_global_plugin_manager()
    path = os.fspath(path)
    found = pm.hook.identify_format(path=path, stream=stream)
    if found is None:
        raise UnsupportedFormatError(f"No registered format can read {path}")
    logger.debug(f"{path} identified as {found.name}")
    return found


def lookup_writer(path, pm=None):
    """
    Find the format plugin able to write ``path``, judged by suffix alone.

    Raises:
        UnsupportedFormatError: If no registered format writes that suffix
    """
    pm = pm or get_global_plugin_manager()
    path = os.fspath(path)
    found = pm.hook.identify_writer_format(path=path)
    if found is None:
        raise UnsupportedFormatError(f"No registered format can write {path}")
    return found
