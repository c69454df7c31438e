"""
Prompt point accumulation for the current image.

Two modes:
- Hover: the list holds at most one positive point that follows the cursor
- Multi-point: entered on the first click, every click appends and hover
  updates are ignored until the store is cleared
"""

from __future__ import annotations

from typing import List, Tuple
from loguru import logger

from samcut.core.contracts import Point


class PointStore:
    """
    Ordered prompt points for one image.

    Guarantees:
    - Point order is insertion order
    - Hover updates never touch a multi-point session
    - clear() returns the store to hover mode
    """

    def __init__(self):
        # State
        self._points: List[Point] = []
        self._multi_point = False

    @property
    def points(self) -> Tuple[Point, ...]:
        return tuple(self._points)

    @property
    def multi_point(self) -> bool:
        return self._multi_point

    @property
    def export_enabled(self) -> bool:
        return len(self._points) > 0

    def __len__(self) -> int:
        return len(self._points)

    def add_point(self, point: Point):
        """Append a clicked point, entering multi-point mode if needed."""
        if not self._multi_point:
            # Drop the hover point; the click starts a fresh prompt list
            self._points = []
            self._multi_point = True
            logger.debug("Entered multi-point mode")
        self._points.append(point)

    def set_hover_point(self, point: Point) -> bool:
        """
        Replace the list with a single hover point.

        Returns:
            False if multi-point mode is active and the update was ignored.
        """
        if self._multi_point:
            return False
        self._points = [point]
        return True

    def clear(self):
        self._points = []
        self._multi_point = False
