"""
Plugin hook specifications for microplane formats.

This module defines the hook specifications that format plugins implement
using the pluggy framework. The format registry drives these hooks to find
the plugin responsible for a given file.
"""

from __future__ import annotations

from typing import Any, List, Optional

import pluggy

hookspec = pluggy.HookspecMarker("microplane")


@hookspec
def format_name() -> str:
    """
    Return the human-readable name of the file format.

    Returns:
        String name of the format
    """


@hookspec
def format_suffixes() -> List[str]:
    """
    Return the file name suffixes (without dot) associated with the format.

    Returns:
        List of lower-case suffixes
    """


@hookspec(firstresult=True)
def identify_format(path: str, stream: Optional[Any]) -> Optional[Any]:
    """
    Return the format plugin able to read ``path``, or None.

    Args:
        path: Path of the candidate file
        stream: Optional already opened stream over the file's content

    Returns:
        The matching format plugin. The first non-None result wins.
    """


@hookspec(firstresult=True)
def identify_writer_format(path: str) -> Optional[Any]:
    """
    Return the format plugin able to write ``path``, or None.

    Args:
        path: Destination path; only its suffix is consulted

    Returns:
        The matching format plugin. The first non-None result wins.
    """
