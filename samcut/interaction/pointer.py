"""
Pointer event mapping.

Converts screen-space pointer events into normalized prompt points
relative to the displayed image's bounding box.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from samcut.core.contracts import Point, PointLabel


# Mouse button ids
BUTTON_LEFT = 0
BUTTON_MIDDLE = 1
BUTTON_RIGHT = 2


@dataclass(frozen=True)
class DisplayBox:
    """Screen rectangle the image is drawn into."""
    left: float
    top: float
    width: float
    height: float

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Display box must have positive size, got {self.width}x{self.height}")


@dataclass(frozen=True)
class PointerEvent:
    """A pointer event in screen coordinates."""
    x: float
    y: float
    button: int = BUTTON_LEFT


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def to_point(event: PointerEvent, box: DisplayBox) -> Point:
    """
    Map a pointer event to a prompt point.

    Coordinates outside the box are clamped onto its edge. The right
    button produces a negative point, everything else a positive one.
    """
    x = clamp_unit((event.x - box.left) / box.width)
    y = clamp_unit((event.y - box.top) / box.height)
    label = PointLabel.NEGATIVE if event.button == BUTTON_RIGHT else PointLabel.POSITIVE
    return Point(x, y, label)


def click_to_point(event: PointerEvent, box: DisplayBox) -> Optional[Point]:
    """Like to_point, but only left and right buttons produce a point."""
    if event.button not in (BUTTON_LEFT, BUTTON_RIGHT):
        return None
    return to_point(event, box)
