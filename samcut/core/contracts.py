"""
Core data contracts for the samcut segmentation session.

All components exchange these types so that:
- Prompt points are always normalized to the displayed image
- Mask candidates carry one documented pixel layout
- Embeddings are never mutated after creation
- Operation outcomes are reported, not thrown past the session
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray


# ============================================================
# ENUMERATIONS
# ============================================================

class PointLabel(IntEnum):
    """Prompt point polarity as understood by the mask decoder."""
    NEGATIVE = 0
    POSITIVE = 1


class SessionState(Enum):
    """Image lifecycle of a session."""
    IDLE = auto()
    LOADING = auto()
    READY = auto()


class DecodeState(Enum):
    """Single-flight decode scheduler state."""
    IDLE = auto()
    RUNNING = auto()
    RUNNING_WITH_PENDING_RERUN = auto()


# ============================================================
# PROMPTS
# ============================================================

@dataclass(frozen=True)
class Point:
    """
    A prompt point in normalized display coordinates.

    x and y are fractions of the displayed image's bounding box,
    both in [0, 1].
    """
    x: float
    y: float
    label: PointLabel = PointLabel.POSITIVE

    def __post_init__(self):
        if not (0.0 <= self.x <= 1.0 and 0.0 <= self.y <= 1.0):
            raise ValueError(f"Point outside unit square: ({self.x}, {self.y})")
        object.__setattr__(self, "label", PointLabel(self.label))

    @property
    def position(self) -> Tuple[float, float]:
        return (self.x, self.y)


def points_as_arrays(points: Sequence[Point]) -> Tuple[NDArray[np.float32], NDArray[np.int64]]:
    """
    Prompt points as model-ready arrays.

    Returns:
        (coords (N, 2) normalized x/y, labels (N,)), in point order
    """
    if not points:
        return (
            np.zeros((0, 2), dtype=np.float32),
            np.zeros((0,), dtype=np.int64),
        )
    coords = np.array([p.position for p in points], dtype=np.float32)
    labels = np.array([int(p.label) for p in points], dtype=np.int64)
    return coords, labels


# ============================================================
# MODEL I/O
# ============================================================

@dataclass(frozen=True)
class ImageEmbedding:
    """
    Precomputed per-image features.

    The payload is opaque to the session; only the backend that
    produced it knows how to consume it. Sizes are (height, width).
    """
    features: Any
    original_size: Tuple[int, int]
    reshaped_size: Tuple[int, int]
    model_key: str = ""


# Flat index of candidate c at pixel p is K * p + c, i.e. an (H, W, K) array
# in C order. Every consumer goes through MaskCandidateSet.label_at or
# candidate_plane instead of computing offsets itself.
INTERLEAVED_LAYOUT = "HWK"

# Label value marking a pixel as inside the mask.
INSIDE_MASK = 1


@dataclass
class MaskCandidateSet:
    """
    Candidate masks returned by one decode call.

    Guarantees:
    - masks has shape (H, W, K) with dtype uint8 and values in {0, 1}
    - scores has shape (K,)
    - candidate order matches score order
    """
    masks: NDArray[np.uint8]
    scores: NDArray[np.float32]

    def __post_init__(self):
        self.masks = np.ascontiguousarray(self.masks, dtype=np.uint8)
        self.scores = np.asarray(self.scores, dtype=np.float32).reshape(-1)

        if self.masks.ndim != 3:
            raise ValueError(f"Expected (H, W, K) masks, got shape {self.masks.shape}")
        if self.masks.shape[2] != self.scores.shape[0]:
            raise ValueError(
                f"Mask/score count mismatch: {self.masks.shape[2]} masks, "
                f"{self.scores.shape[0]} scores"
            )

    @classmethod
    def from_planar(
        cls,
        planes: NDArray,
        scores: NDArray,
    ) -> "MaskCandidateSet":
        """
        Build a set from (K, H, W) masks, the layout most models emit.

        Args:
            planes: Boolean or 0/1 masks, one plane per candidate
            scores: One quality score per candidate
        """
        planes = np.asarray(planes)
        if planes.ndim != 3:
            raise ValueError(f"Expected (K, H, W) masks, got shape {planes.shape}")
        interleaved = np.moveaxis((planes > 0).astype(np.uint8), 0, -1)
        return cls(masks=interleaved, scores=scores)

    @property
    def count(self) -> int:
        return int(self.masks.shape[2])

    @property
    def dimensions(self) -> Tuple[int, int]:
        """(height, width) of every candidate."""
        return (int(self.masks.shape[0]), int(self.masks.shape[1]))

    def label_at(self, pixel_index: int, candidate: int) -> int:
        """Label of one pixel (row-major index) in one candidate."""
        height, width = self.dimensions
        if not 0 <= candidate < self.count:
            raise IndexError(f"Candidate {candidate} out of range (0..{self.count - 1})")
        if not 0 <= pixel_index < height * width:
            raise IndexError(f"Pixel {pixel_index} out of range (0..{height * width - 1})")
        return int(self.masks.reshape(-1)[self.count * pixel_index + candidate])

    def candidate_plane(self, candidate: int) -> NDArray[np.uint8]:
        """(H, W) view of a single candidate."""
        if not 0 <= candidate < self.count:
            raise IndexError(f"Candidate {candidate} out of range (0..{self.count - 1})")
        return self.masks[:, :, candidate]


@dataclass(frozen=True)
class SelectedMask:
    """The winning candidate of a MaskCandidateSet."""
    candidates: MaskCandidateSet
    index: int
    score: float

    @property
    def plane(self) -> NDArray[np.uint8]:
        return self.candidates.candidate_plane(self.index)


# ============================================================
# RENDER OUTPUT
# ============================================================

@dataclass
class OverlayBuffer:
    """
    RGBA overlay the same size as the displayed image.

    Fully transparent pixels have colour and alpha all zero.
    """
    rgba: NDArray[np.uint8]

    @classmethod
    def blank(cls, height: int, width: int) -> "OverlayBuffer":
        return cls(rgba=np.zeros((height, width, 4), dtype=np.uint8))

    @property
    def dimensions(self) -> Tuple[int, int]:
        return (int(self.rgba.shape[0]), int(self.rgba.shape[1]))

    @property
    def alpha(self) -> NDArray[np.uint8]:
        return self.rgba[:, :, 3]

    @property
    def is_empty(self) -> bool:
        return not bool(self.alpha.any())

    def clear(self):
        self.rgba[...] = 0


# ============================================================
# OPERATION RESULTS
# ============================================================

@dataclass
class ExportResult:
    """Outcome of a cut-out export across both sinks."""
    png: bytes = b""
    local_path: Optional[Path] = None
    uploaded: bool = False
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> Optional[str]:
        if not self.errors:
            return None
        return "; ".join(f"{sink}: {msg}" for sink, msg in self.errors.items())
