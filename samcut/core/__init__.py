"""
Core types for the samcut session engine.

- Data contracts shared by every component
- Error hierarchy reported at the session boundary
- YAML-backed session configuration
"""

from .contracts import (
    PointLabel,
    SessionState,
    DecodeState,
    Point,
    ImageEmbedding,
    MaskCandidateSet,
    SelectedMask,
    OverlayBuffer,
    ExportResult,
    INTERLEAVED_LAYOUT,
    INSIDE_MASK,
)
from .errors import (
    SessionError,
    LoadFailure,
    EmbeddingFailure,
    DecodeFailure,
    DecodeRefused,
    UploadFailure,
    ModelLoadFailure,
)
from .config import SessionConfig, load_config, MODEL_IDS
