"""
User interaction for the segmentation session.

Responsibilities:
- Screen pointer to normalized point mapping
- Hover and multi-point prompt accumulation
"""

from .point_store import PointStore
from .pointer import (
    DisplayBox,
    PointerEvent,
    to_point,
    click_to_point,
    BUTTON_LEFT,
    BUTTON_MIDDLE,
    BUTTON_RIGHT,
)
