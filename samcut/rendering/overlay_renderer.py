"""
Overlay rendering for the selected mask.
"""

from __future__ import annotations

from typing import Callable, Optional, Tuple
import numpy as np
import cv2
from loguru import logger

from samcut.core.contracts import INSIDE_MASK, OverlayBuffer, SelectedMask


DEFAULT_HIGHLIGHT = (0, 114, 189, 255)


def score_status(score: float) -> str:
    return f"Segment score: {score:.2f}"


class OverlayRenderer:
    """
    Rasterizes a selected mask as an RGBA overlay.

    Guarantees:
    - Every render fully overwrites the previous buffer
    - Inside-mask pixels get the highlight colour at full opacity
    - All other pixels are zero in every channel
    """

    def __init__(
        self,
        highlight_color: Tuple[int, int, int, int] = DEFAULT_HIGHLIGHT,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            highlight_color: RGBA colour of inside-mask pixels
            on_status: Receives the score line after each render
        """
        if len(highlight_color) != 4:
            raise ValueError("highlight_color must be RGBA")
        self.highlight_color = np.array(highlight_color, dtype=np.uint8)
        self._on_status = on_status

    def render(
        self,
        mask: SelectedMask,
        dimensions: Optional[Tuple[int, int]] = None,
        into: Optional[OverlayBuffer] = None,
    ) -> OverlayBuffer:
        """
        Render a mask.

        Args:
            mask: Selected candidate
            dimensions: (height, width) of the displayed image; defaults to
                the mask's own size
            into: Buffer to overwrite instead of allocating a new one

        Returns:
            The overlay buffer
        """
        plane = mask.plane
        height, width = dimensions or plane.shape[:2]

        if plane.shape[:2] != (height, width):
            logger.debug(f"Resizing mask {plane.shape[1]}x{plane.shape[0]} to {width}x{height}")
            plane = cv2.resize(
                np.ascontiguousarray(plane), (width, height), interpolation=cv2.INTER_NEAREST
            )

        if into is None or into.dimensions != (height, width):
            into = OverlayBuffer.blank(height, width)
        else:
            into.clear()

        into.rgba[plane == INSIDE_MASK] = self.highlight_color

        if self._on_status is not None:
            self._on_status(score_status(mask.score))
        return into

    @staticmethod
    def blank(dimensions: Tuple[int, int]) -> OverlayBuffer:
        return OverlayBuffer.blank(*dimensions)
