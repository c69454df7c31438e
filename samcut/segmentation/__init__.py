"""
Segmentation for the interactive session.

Responsibilities:
- Model loading and inference (SAM via transformers)
- Per-image embedding lifecycle
- Single-flight decode coalescing
- Best-candidate selection
"""

from .backends import InferenceBackend, SamBackend
from .embedding_cache import EmbeddingCache
from .mask_selector import MaskSelector
from .decode_coordinator import DecodeCoordinator
