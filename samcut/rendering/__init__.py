"""
Pixel compositing.

Responsibilities:
- Live RGBA overlay of the selected mask
- Alpha cut-out extraction and PNG encoding
"""

from .overlay_renderer import OverlayRenderer, score_status, DEFAULT_HIGHLIGHT
from .cut_extractor import CutExtractor
