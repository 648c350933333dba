"""
ui/types.py
===========
Lightweight data containers used across every UI module.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

ColorRGB = Tuple[int, int, int]
ColorRGBA = Tuple[int, int, int, int]


@dataclass
class StatusLine:
    """Message shown in the status bar until *until* (view clock seconds)."""
    text: str = ""
    is_error: bool = False
    until: float = 0.0

    def visible(self, now: float) -> bool:
        return bool(self.text) and now < self.until
