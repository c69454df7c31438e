"""
Inference backends.

A backend turns an image into an embedding and an embedding plus prompt
points into candidate masks. The session never touches model internals.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Dict, Optional, Sequence, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from samcut.core.config import MODEL_IDS
from samcut.core.contracts import ImageEmbedding, MaskCandidateSet, Point, points_as_arrays
from samcut.core.errors import ModelLoadFailure


class InferenceBackend(ABC):
    """
    Abstract base class for segmentation backends.

    Implementations must be safe to await from the session's event loop;
    heavy work belongs in a worker thread.

    Example:
        class MyBackend(InferenceBackend):
            async def load(self, model_key):
                ...

            async def embed(self, image):
                return ImageEmbedding(features, image.shape[:2], (1024, 1024))

            async def decode(self, embedding, points):
                return MaskCandidateSet.from_planar(planes, scores)
    """

    @property
    @abstractmethod
    def model_key(self) -> Optional[str]:
        """Key of the currently loaded model, or None."""
        pass

    @abstractmethod
    async def load(self, model_key: str) -> None:
        """Load (or switch to) a model by key."""
        pass

    @abstractmethod
    async def embed(self, image: NDArray[np.uint8]) -> ImageEmbedding:
        """
        Compute the image embedding.

        Args:
            image: RGB image (H x W x 3)
        """
        pass

    @abstractmethod
    async def decode(
        self,
        embedding: ImageEmbedding,
        points: Sequence[Point],
    ) -> MaskCandidateSet:
        """
        Predict candidate masks at the embedding's original size.

        Args:
            embedding: Embedding produced by this backend
            points: Normalized prompt points, in order
        """
        pass


class SamBackend(InferenceBackend):
    """
    Segment Anything backend using Hugging Face transformers.

    Guarantees:
    - Each model is downloaded and moved to the device once per process
    - Switching back to a previously used key reuses the cached model
    - Masks are returned at the source image resolution
    """

    # Shared across instances: model key -> (model, processor)
    _model_cache: Dict[str, Tuple[object, object]] = {}

    def __init__(
        self,
        model_ids: Optional[Dict[str, str]] = None,
        device: str = "auto",
    ):
        """
        Initialize the backend. No model is loaded until load().

        Args:
            model_ids: Model key to Hugging Face repo id
            device: 'cuda', 'cpu' or 'auto'
        """
        self.model_ids = dict(model_ids or MODEL_IDS)
        self.device = self._resolve_device(device)

        self._model_key: Optional[str] = None
        self._model = None
        self._processor = None

    @staticmethod
    def _resolve_device(device: str) -> str:
        if device != "auto":
            return device
        import torch
        return "cuda" if torch.cuda.is_available() else "cpu"

    @property
    def model_key(self) -> Optional[str]:
        return self._model_key

    async def load(self, model_key: str) -> None:
        if model_key not in self.model_ids:
            raise ModelLoadFailure(f"Unknown model key: {model_key}")

        cache_key = f"{model_key}@{self.device}"
        if cache_key not in self._model_cache:
            try:
                self._model_cache[cache_key] = await asyncio.to_thread(
                    self._load_blocking, self.model_ids[model_key]
                )
            except Exception as e:
                logger.error(f"Failed to load model {model_key}: {e}")
                raise ModelLoadFailure(str(e)) from e
        else:
            logger.info(f"Using cached model {model_key}")

        self._model, self._processor = self._model_cache[cache_key]
        self._model_key = model_key

    def _load_blocking(self, repo_id: str):
        from transformers import SamModel, SamProcessor

        logger.info(f"Loading SAM model {repo_id} on {self.device}")
        start = time.time()
        processor = SamProcessor.from_pretrained(repo_id)
        model = SamModel.from_pretrained(repo_id).to(self.device).eval()
        for param in model.parameters():
            param.requires_grad = False
        logger.info(f"Model {repo_id} loaded in {time.time() - start:.1f}s")
        return model, processor

    def _current_model(self):
        """(model, processor) captured on the loop thread for one call."""
        if self._model is None:
            raise RuntimeError("No model loaded; call load() first")
        return self._model, self._processor

    async def embed(self, image: NDArray[np.uint8]) -> ImageEmbedding:
        model, processor = self._current_model()
        return await asyncio.to_thread(
            self._embed_blocking, model, processor, self._model_key, image
        )

    def _embed_blocking(
        self,
        model,
        processor,
        model_key: Optional[str],
        image: NDArray[np.uint8],
    ) -> ImageEmbedding:
        import torch

        start = time.time()
        inputs = processor(images=image, return_tensors="pt")
        pixel_values = inputs["pixel_values"].to(self.device)
        with torch.inference_mode():
            features = model.get_image_embeddings(pixel_values)

        original = tuple(int(v) for v in inputs["original_sizes"][0].tolist())
        reshaped = tuple(int(v) for v in inputs["reshaped_input_sizes"][0].tolist())
        logger.debug(f"Embedding computed in {(time.time() - start) * 1000:.0f}ms")

        return ImageEmbedding(
            features=features,
            original_size=original,
            reshaped_size=reshaped,
            model_key=model_key or "",
        )

    async def decode(
        self,
        embedding: ImageEmbedding,
        points: Sequence[Point],
    ) -> MaskCandidateSet:
        model, processor = self._current_model()
        if embedding.model_key and embedding.model_key != self._model_key:
            raise RuntimeError(
                f"Embedding from {embedding.model_key} cannot be decoded by {self._model_key}"
            )
        coords, labels = points_as_arrays(points)
        return await asyncio.to_thread(
            self._decode_blocking, model, processor, embedding, coords, labels
        )

    def _decode_blocking(
        self,
        model,
        processor,
        embedding: ImageEmbedding,
        coords: NDArray[np.float32],
        labels: NDArray[np.int64],
    ) -> MaskCandidateSet:
        import torch

        # Normalized coordinates scale straight onto the model's input grid
        height, width = embedding.reshaped_size
        scaled = coords * np.array([width, height], dtype=np.float32)

        input_points = torch.from_numpy(scaled)[None, None].to(self.device)
        input_labels = torch.from_numpy(labels)[None, None].to(self.device)

        with torch.inference_mode():
            outputs = model(
                image_embeddings=embedding.features,
                input_points=input_points,
                input_labels=input_labels,
                multimask_output=True,
            )

        masks = processor.image_processor.post_process_masks(
            outputs.pred_masks.cpu(),
            torch.tensor([embedding.original_size]),
            torch.tensor([embedding.reshaped_size]),
        )
        # (1, K, H, W) for the single prompt batch
        planes = masks[0][0].numpy()
        scores = outputs.iou_scores[0, 0].float().cpu().numpy()
        return MaskCandidateSet.from_planar(planes, scores)
