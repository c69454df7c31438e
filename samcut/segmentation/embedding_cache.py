"""
Per-image embedding lifecycle.
"""

from __future__ import annotations

import time
from typing import Optional
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from samcut.core.contracts import ImageEmbedding
from samcut.core.errors import EmbeddingFailure
from .backends import InferenceBackend


class EmbeddingCache:
    """
    Holds the embedding of the currently loaded image.

    Guarantees:
    - At most one embedding computation in flight
    - A failed computation leaves no embedding behind
    - A result that finishes after invalidate() is dropped
    """

    def __init__(self, backend: InferenceBackend):
        """
        Args:
            backend: Backend used to compute embeddings
        """
        self._backend = backend

        # State
        self._embedding: Optional[ImageEmbedding] = None
        self._busy = False
        self._generation = 0

    @property
    def embedding(self) -> Optional[ImageEmbedding]:
        return self._embedding

    @property
    def busy(self) -> bool:
        return self._busy

    async def compute_embedding(
        self,
        image: NDArray[np.uint8],
    ) -> Optional[ImageEmbedding]:
        """
        Embed a newly loaded image, replacing any previous embedding.

        Returns:
            The new embedding, or None if a computation was already running
            or the cache was invalidated while this one ran.

        Raises:
            EmbeddingFailure: The backend failed.
        """
        if self._busy:
            logger.warning("Embedding already in progress, ignoring request")
            return None

        self.invalidate()
        generation = self._generation
        self._busy = True
        start = time.time()

        try:
            embedding = await self._backend.embed(image)
        except Exception as e:
            logger.error(f"Embedding failed: {e}")
            raise EmbeddingFailure(str(e)) from e
        finally:
            self._busy = False

        if generation != self._generation:
            logger.info("Image changed during embedding, result discarded")
            return None

        self._embedding = embedding
        self._generation += 1
        logger.info(
            f"Embedding ready for {embedding.original_size[1]}x{embedding.original_size[0]} "
            f"image in {(time.time() - start) * 1000:.0f}ms"
        )
        return embedding

    def invalidate(self):
        self._embedding = None
        self._generation += 1
