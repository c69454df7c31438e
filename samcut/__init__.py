"""
samcut: interactive point-prompt segmentation.

Click on an image, get a Segment Anything mask for the clicked object,
and cut it out as a transparent PNG.

Design rules:
1. One embedding per image, computed once
2. At most one decode in flight; bursts collapse into one rerun
3. The overlay always catches up to the latest prompt points
4. Failures become status text, never crashes
"""

__version__ = "0.1.0"
