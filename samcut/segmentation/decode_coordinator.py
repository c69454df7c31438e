"""
Single-flight decode scheduling.

Point changes arrive far faster than the decoder can answer. The
coordinator keeps exactly one decode in flight and folds every request
that arrives meanwhile into a single rerun, which reads the prompt
points as they are when it starts. The last request always gets a decode
that reflects it; intermediate point states may never be decoded.

State transitions:
    IDLE --request--> RUNNING
    RUNNING --request--> RUNNING_WITH_PENDING_RERUN
    RUNNING_WITH_PENDING_RERUN --request--> RUNNING_WITH_PENDING_RERUN
    RUNNING --done--> IDLE
    RUNNING_WITH_PENDING_RERUN --done--> RUNNING (rerun)
    any --failure--> IDLE (pending rerun dropped)
"""

from __future__ import annotations

import time
from typing import Callable, Optional, Tuple
from loguru import logger

from samcut.core.contracts import DecodeState, ImageEmbedding, Point, SelectedMask
from samcut.core.errors import DecodeFailure, DecodeRefused
from samcut.interaction.point_store import PointStore
from .backends import InferenceBackend
from .embedding_cache import EmbeddingCache
from .mask_selector import MaskSelector


class DecodeCoordinator:
    """
    Coalescing scheduler for decode calls.

    Guarantees:
    - At most one backend decode call in flight
    - No queue: any number of requests during a run cost one rerun
    - Results dispatched before invalidate() are never delivered
    - A failed decode always returns the coordinator to IDLE
    """

    def __init__(
        self,
        backend: InferenceBackend,
        points: PointStore,
        embeddings: EmbeddingCache,
        on_result: Callable[[SelectedMask], None],
        selector: Optional[MaskSelector] = None,
    ):
        """
        Args:
            backend: Backend that runs the decode
            points: Prompt points, read at dispatch time
            embeddings: Source of the current embedding
            on_result: Called with each selected mask that is still current
            selector: Candidate selection strategy
        """
        self._backend = backend
        self._points = points
        self._embeddings = embeddings
        self._on_result = on_result
        self._selector = selector or MaskSelector()

        # State
        self._state = DecodeState.IDLE
        self._generation = 0

        # Stats
        self.discarded_count = 0
        self.last_decode_ms = 0.0

    @property
    def state(self) -> DecodeState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is not DecodeState.IDLE

    def invalidate(self):
        """Mark every dispatched decode as stale."""
        self._generation += 1

    async def request_decode(self) -> bool:
        """
        Ask for a decode of the current prompt points.

        Returns:
            True if this call ran the decode loop, False if it was folded
            into the decode already running.

        Raises:
            DecodeRefused: No embedding or no points.
            DecodeFailure: The backend failed.
        """
        if self._state is not DecodeState.IDLE:
            self._state = DecodeState.RUNNING_WITH_PENDING_RERUN
            return False

        embedding, points = self._snapshot()

        try:
            while True:
                self._state = DecodeState.RUNNING
                await self._run_once(embedding, points)

                if self._state is not DecodeState.RUNNING_WITH_PENDING_RERUN:
                    return True

                try:
                    embedding, points = self._snapshot()
                except DecodeRefused as e:
                    logger.debug(f"Pending rerun dropped: {e}")
                    return True
        finally:
            self._state = DecodeState.IDLE

    def _snapshot(self) -> Tuple[ImageEmbedding, Tuple[Point, ...]]:
        embedding = self._embeddings.embedding
        if embedding is None:
            raise DecodeRefused("No image embedding available")
        points = self._points.points
        if not points:
            raise DecodeRefused("No prompt points")
        return embedding, points

    def _is_stale(self, generation: int, embedding: ImageEmbedding) -> bool:
        return generation != self._generation or embedding is not self._embeddings.embedding

    async def _run_once(self, embedding: ImageEmbedding, points: Tuple[Point, ...]):
        generation = self._generation
        start = time.time()

        try:
            candidates = await self._backend.decode(embedding, points)
        except Exception as e:
            if self._is_stale(generation, embedding):
                self.discarded_count += 1
                logger.debug(f"Discarding stale decode failure: {e}")
                return
            logger.error(f"Decode failed: {e}")
            raise DecodeFailure(str(e)) from e

        self.last_decode_ms = (time.time() - start) * 1000

        if self._is_stale(generation, embedding):
            self.discarded_count += 1
            logger.debug("Discarding stale decode result")
            return

        try:
            selected = self._selector.select(candidates)
        except ValueError as e:
            logger.error(f"Malformed decode output: {e}")
            raise DecodeFailure(str(e)) from e

        logger.debug(
            f"Decoded {len(points)} point(s) in {self.last_decode_ms:.0f}ms, "
            f"best candidate {selected.index} ({selected.score:.3f})"
        )
        self._on_result(selected)
