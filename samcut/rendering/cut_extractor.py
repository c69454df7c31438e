"""
Alpha cut-out extraction.

Combines the current overlay with the source image: wherever the overlay
is visible the source colour shows through, everywhere else stays
transparent.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
import cv2

from samcut.core.contracts import OverlayBuffer


class CutExtractor:
    """One-shot RGBA cut-out from overlay plus source image."""

    def extract(
        self,
        overlay: OverlayBuffer,
        source: NDArray[np.uint8],
    ) -> NDArray[np.uint8]:
        """
        Build the cut-out.

        Args:
            overlay: Current overlay (alpha defines the cut region)
            source: RGB or RGBA source image of the same size

        Returns:
            RGBA image (H x W x 4)
        """
        if source.ndim != 3 or source.shape[2] not in (3, 4):
            raise ValueError(f"Source must be RGB or RGBA, got shape {source.shape}")
        if source.shape[:2] != overlay.dimensions:
            raise ValueError(
                f"Size mismatch: overlay {overlay.dimensions}, source {source.shape[:2]}"
            )

        cut = overlay.rgba.copy()
        visible = cut[:, :, 3] > 0
        cut[visible, :3] = source[visible, :3]
        return cut

    @staticmethod
    def encode_png(rgba: NDArray[np.uint8]) -> bytes:
        """Lossless PNG encoding with alpha."""
        ok, buf = cv2.imencode(".png", cv2.cvtColor(rgba, cv2.COLOR_RGBA2BGRA))
        if not ok:
            raise ValueError("PNG encoding failed")
        return buf.tobytes()
