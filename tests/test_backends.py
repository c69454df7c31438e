import asyncio

import numpy as np
import pytest

from samcut.core.contracts import ImageEmbedding, MaskCandidateSet, Point
from samcut.core.errors import ModelLoadFailure
from samcut.segmentation.backends import SamBackend


def test_unknown_model_key_fails_without_download():
    backend = SamBackend(device="cpu")
    with pytest.raises(ModelLoadFailure):
        asyncio.run(backend.load("sam_vit_huge"))
    assert backend.model_key is None


def test_inference_requires_loaded_model():
    backend = SamBackend(device="cpu")
    with pytest.raises(RuntimeError):
        asyncio.run(backend.embed(np.zeros((4, 4, 3), dtype=np.uint8)))


def loaded_backend(model_key="slimsam"):
    backend = SamBackend(device="cpu")
    backend._model, backend._processor = object(), object()
    backend._model_key = model_key
    return backend


def test_worker_uses_model_captured_at_call_time(monkeypatch):
    backend = loaded_backend()
    model, processor = backend._model, backend._processor
    seen = {}

    def embed_blocking(m, p, model_key, image):
        # A model switch lands while the worker is running
        backend._model, backend._processor = object(), object()
        seen["embed"] = (m, p, model_key)
        return ImageEmbedding(np.zeros((1, 8)), (4, 4), (4, 4), model_key)

    def decode_blocking(m, p, embedding, coords, labels):
        backend._model = object()
        seen["decode"] = (m, p, coords.tolist(), labels.tolist())
        return MaskCandidateSet.from_planar(np.ones((1, 4, 4)), [0.5])

    monkeypatch.setattr(backend, "_embed_blocking", embed_blocking)
    monkeypatch.setattr(backend, "_decode_blocking", decode_blocking)

    embedding = asyncio.run(backend.embed(np.zeros((4, 4, 3), dtype=np.uint8)))
    assert seen["embed"] == (model, processor, "slimsam")

    backend._model, backend._processor = model, processor
    asyncio.run(backend.decode(embedding, [Point(0.5, 0.25)]))
    assert seen["decode"] == (model, processor, [[0.5, 0.25]], [1])


def test_decode_rejects_embedding_from_other_model():
    backend = loaded_backend("sam_vit_base")
    embedding = ImageEmbedding(np.zeros((1, 8)), (4, 4), (4, 4), "slimsam")
    with pytest.raises(RuntimeError):
        asyncio.run(backend.decode(embedding, [Point(0.5, 0.5)]))
