"""
Named color lookup used for every trace color.

Notes:
    - Registered names resolve to their hex value.
    - Unregistered names pass through unchanged, so literal colors ("#ff0000", "red")
      work without registration.
    - An empty name resolves to "" which callers treat as "no color set".
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from .schema import ColorDoc

__all__ = ["ColorTable"]


@dataclass(frozen=True)
class ColorTable:
    """
    Mapping of friendly color names to hex strings, plus a default color.

    Examples:
        >>> colors = ColorTable({"brand": "#1f77b4"})
        >>> colors.lookup("brand"), colors.lookup("red"), colors.lookup("")
        ('#1f77b4', 'red', '')
    """

    colors: Mapping[str, str] = field(default_factory=dict)
    default: str = ""

    @classmethod
    def from_doc(cls, doc: ColorDoc) -> ColorTable:
        return cls(colors={nc.name: nc.color for nc in doc.colors}, default=doc.default)

    def lookup(self, name: str) -> str:
        if not name:
            return ""
        return self.colors.get(name, name)
