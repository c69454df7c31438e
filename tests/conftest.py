"""Shared fixtures: a scriptable inference backend and small test images."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pytest

from samcut.core.contracts import ImageEmbedding, MaskCandidateSet, Point
from samcut.core.errors import ModelLoadFailure
from samcut.segmentation.backends import InferenceBackend


IMAGE_SIZE = (4, 4)


def make_planes(height: int, width: int) -> np.ndarray:
    """Three distinguishable candidates: top row, centre block, everything."""
    planes = np.zeros((3, height, width), dtype=np.uint8)
    planes[0, 0, :] = 1
    planes[1, 1:3, 1:3] = 1
    planes[2, :, :] = 1
    return planes


class FakeBackend(InferenceBackend):
    """
    In-memory backend.

    Set decode_gate / embed_gate to an asyncio.Event to hold calls in
    flight until the test releases them.
    """

    def __init__(self, scores: Sequence[float] = (0.8, 0.95, 0.6)):
        self.scores = list(scores)
        self.known_models = {"slimsam", "sam_vit_base", "sam_vit_large", "fake"}
        self.fail_embed = False
        self.fail_decode = False
        self.empty_result = False
        self.decode_gate: Optional[asyncio.Event] = None
        self.embed_gate: Optional[asyncio.Event] = None

        self._model_key: Optional[str] = None
        self.load_calls: List[str] = []
        self.embed_calls = 0
        self.decode_calls: List[Tuple[Point, ...]] = []
        self.results: List[MaskCandidateSet] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def model_key(self) -> Optional[str]:
        return self._model_key

    async def load(self, model_key: str) -> None:
        self.load_calls.append(model_key)
        if model_key not in self.known_models:
            raise ModelLoadFailure(f"Unknown model key: {model_key}")
        self._model_key = model_key

    async def embed(self, image: np.ndarray) -> ImageEmbedding:
        self.embed_calls += 1
        if self.embed_gate is not None:
            await self.embed_gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_embed:
            raise RuntimeError("encoder exploded")
        size = tuple(image.shape[:2])
        return ImageEmbedding(
            features=np.zeros((1, 8), dtype=np.float32),
            original_size=size,
            reshaped_size=size,
            model_key=self._model_key or "",
        )

    async def decode(
        self,
        embedding: ImageEmbedding,
        points: Sequence[Point],
    ) -> MaskCandidateSet:
        self.decode_calls.append(tuple(points))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.decode_gate is not None:
                await self.decode_gate.wait()
            else:
                await asyncio.sleep(0)
            if self.fail_decode:
                raise RuntimeError("decoder exploded")
            if self.empty_result:
                height, width = embedding.original_size
                return MaskCandidateSet.from_planar(np.zeros((0, height, width)), [])
            result = MaskCandidateSet.from_planar(
                make_planes(*embedding.original_size), self.scores
            )
            self.results.append(result)
            return result
        finally:
            self.in_flight -= 1


class RecordingMaskSink:
    """Stands in for RemoteMaskSink."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.sent: List[bytes] = []

    async def send(self, png: bytes):
        if self.error is not None:
            raise self.error
        self.sent.append(png)


class StaticFrameSource:
    """Stands in for RemoteFrameSource."""

    def __init__(self, image: Optional[np.ndarray] = None, error: Optional[Exception] = None):
        self.image = image
        self.error = error
        self.fetch_calls = 0

    async def fetch(self) -> np.ndarray:
        self.fetch_calls += 1
        if self.error is not None:
            raise self.error
        return self.image


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def image() -> np.ndarray:
    h, w = IMAGE_SIZE
    img = np.zeros((h, w, 3), dtype=np.uint8)
    img[..., 0] = 10
    img[..., 1] = 20
    img[..., 2] = 30
    img[2, 2] = (200, 100, 50)
    return img
