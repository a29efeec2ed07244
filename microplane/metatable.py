"""Free-form key/value annotations attached to images and datasets."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class MetaTable(Dict[str, Any]):
    """Insertion-ordered string-keyed table of scalar or list annotations.

    Behaves exactly like a ``dict`` and adds :meth:`put_list`, which appends
    to the list stored under a key, transparently promoting an existing
    scalar value into a list.

    Examples:
        >>> table = MetaTable()
        >>> table["gain"] = 1.5
        >>> table.put_list("gain", 2.0)
        >>> table["gain"]
        [1.5, 2.0]
    """

    def __init__(self, copy: Optional[Mapping[str, Any]] = None):
        super().__init__()
        if copy is not None:
            for key, value in copy.items():
                self[key] = value

    def put_list(self, key: str, value: Any) -> None:
        """Append ``value`` to the list stored under ``key``."""
        current = self.get(key)
        if current is None:
            self[key] = [value]
        elif isinstance(current, list):
            current.append(value)
        else:
            self[key] = [current, value]

    def copy(self) -> "MetaTable":
        return MetaTable(self)

    def __repr__(self) -> str:
        return f"MetaTable({dict.__repr__(self)})"
