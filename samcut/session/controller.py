"""
Segmentation session controller.

Owns one image session end to end:

1. Load an image (file, array or frame bridge)
2. Compute its embedding once
3. Turn pointer events into prompt points
4. Coalesce decodes and render the best mask as an overlay
5. Export the cut-out to disk and to the bridge

Every failure is caught here, logged and turned into status text. No
operation raises into the UI layer.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional, Union
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from samcut.core.config import SessionConfig
from samcut.core.contracts import (
    ExportResult,
    OverlayBuffer,
    SelectedMask,
    SessionState,
)
from samcut.core.errors import (
    DecodeFailure,
    DecodeRefused,
    EmbeddingFailure,
    LoadFailure,
    ModelLoadFailure,
    UploadFailure,
)
from samcut.interaction.point_store import PointStore
from samcut.interaction.pointer import DisplayBox, PointerEvent, click_to_point, to_point
from samcut.io.exporters import LocalExportSink, RemoteMaskSink
from samcut.io.frame_source import RemoteFrameSource, load_image_file
from samcut.rendering.cut_extractor import CutExtractor
from samcut.rendering.overlay_renderer import OverlayRenderer
from samcut.segmentation.backends import InferenceBackend
from samcut.segmentation.decode_coordinator import DecodeCoordinator
from samcut.segmentation.embedding_cache import EmbeddingCache


# Status lines
STATUS_READY = "Ready"
STATUS_LOADING_MODEL = "Loading model..."
STATUS_EMBEDDING = "Extracting image embedding..."
STATUS_EMBEDDED = "Embedding extracted!"
STATUS_LOADING_FRAME = "Loading frame..."
STATUS_FRAME_FAILED = "Failed to load frame"
STATUS_BUSY = "Busy... please wait"
STATUS_SENDING = "Sending mask..."
STATUS_SENT = "Mask sent"
STATUS_SEND_FAILED = "Failed to send mask"
STATUS_CUT_FAILED = "Failed to cut out mask"


class SessionController:
    """
    Interactive point-prompt segmentation session.

    Guarantees:
    - Decodes only run while READY with an embedding present
    - Loading a new image drops points, overlay and pending results together
    - The overlay reflects the latest prompt points once decoding drains
    - Local export and upload succeed or fail independently
    """

    def __init__(
        self,
        backend: InferenceBackend,
        config: Optional[SessionConfig] = None,
        frame_source: Optional[RemoteFrameSource] = None,
        local_sink: Optional[LocalExportSink] = None,
        mask_sink: Optional[RemoteMaskSink] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize the session.

        Args:
            backend: Inference backend (models load lazily)
            config: Session configuration
            frame_source: Bridge frame source; built from config if omitted
            local_sink: Local export sink; built from config if omitted
            mask_sink: Remote mask sink; built from config if omitted
            on_status: Called with every status line
        """
        self.config = config or SessionConfig()
        self._backend = backend
        self._on_status = on_status

        self.frame_source = frame_source or RemoteFrameSource(
            self.config.frame_url, self.config.http_timeout_s
        )
        self.local_sink = local_sink or LocalExportSink(self.config.export_dir)
        self.mask_sink = mask_sink or RemoteMaskSink(
            self.config.mask_url, self.config.http_timeout_s
        )

        # Components
        self.points = PointStore()
        self.embeddings = EmbeddingCache(backend)
        self.renderer = OverlayRenderer(
            highlight_color=self.config.highlight_color,
            on_status=self._set_status,
        )
        self.extractor = CutExtractor()
        self.coordinator = DecodeCoordinator(
            backend=backend,
            points=self.points,
            embeddings=self.embeddings,
            on_result=self._on_mask,
        )

        # State
        self._state = SessionState.IDLE
        self._image: Optional[NDArray[np.uint8]] = None
        self._overlay: Optional[OverlayBuffer] = None
        self._selected: Optional[SelectedMask] = None
        self._status = STATUS_READY

    # ============================================================
    # PROPERTIES
    # ============================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def status(self) -> str:
        return self._status

    @property
    def image(self) -> Optional[NDArray[np.uint8]]:
        return self._image

    @property
    def overlay(self) -> Optional[OverlayBuffer]:
        return self._overlay

    @property
    def selected(self) -> Optional[SelectedMask]:
        return self._selected

    @property
    def export_enabled(self) -> bool:
        return self.points.export_enabled

    @property
    def busy(self) -> bool:
        return self.embeddings.busy or self.coordinator.busy

    @property
    def model_key(self) -> Optional[str]:
        return self._backend.model_key

    def _set_status(self, text: str):
        self._status = text
        logger.info(f"Status: {text}")
        if self._on_status is not None:
            self._on_status(text)

    def _is_ready(self) -> bool:
        return self._state is SessionState.READY and self.embeddings.embedding is not None

    # ============================================================
    # MODEL
    # ============================================================

    async def change_model(self, model_key: str) -> bool:
        """
        Switch models. The current image is dropped since its embedding
        belongs to the old model.
        """
        self.reset_image()
        self._set_status(STATUS_LOADING_MODEL)
        try:
            await self._backend.load(model_key)
        except ModelLoadFailure as e:
            logger.error(f"Failed to load model {model_key}: {e}")
            self._set_status(f"Failed to load model: {e}")
            return False

        self._set_status(STATUS_READY)
        return True

    # ============================================================
    # IMAGE LOADING
    # ============================================================

    async def load_image(self, image: NDArray[np.uint8]) -> bool:
        """
        Start a session on a new image.

        Args:
            image: RGB or RGBA image (H x W x C)

        Returns:
            True once the embedding is ready.
        """
        if self.embeddings.busy:
            logger.warning("Image load refused: embedding in progress")
            self._set_status(STATUS_BUSY)
            return False

        if image.ndim != 3 or image.shape[2] not in (3, 4):
            logger.error(f"Unsupported image shape {image.shape}")
            self._set_status(f"Unsupported image shape {image.shape}")
            return False

        if self._backend.model_key is None:
            if not await self.change_model(self.config.model_key):
                return False

        self._teardown_points()
        self._image = np.ascontiguousarray(image, dtype=np.uint8)
        self._overlay = None
        self._state = SessionState.LOADING
        self._set_status(STATUS_EMBEDDING)

        try:
            embedding = await self.embeddings.compute_embedding(self._image[:, :, :3])
        except EmbeddingFailure as e:
            self._state = SessionState.IDLE
            self._set_status(f"Failed to extract embedding: {e}")
            return False

        if embedding is None:
            # Superseded by a reset while embedding
            return False

        height, width = self._image.shape[:2]
        self._overlay = OverlayBuffer.blank(height, width)
        self._state = SessionState.READY
        self._set_status(STATUS_EMBEDDED)
        return True

    async def load_image_file(self, path: Union[str, Path]) -> bool:
        try:
            image = load_image_file(path)
        except LoadFailure as e:
            logger.error(f"Failed to load image: {e}")
            self._set_status(f"Failed to load image: {e}")
            return False
        return await self.load_image(image)

    async def load_from_bridge(self) -> bool:
        """Fetch the current frame from the bridge and load it."""
        if self.busy:
            logger.warning("Frame load refused: session busy")
            self._set_status(STATUS_BUSY)
            return False

        self._set_status(STATUS_LOADING_FRAME)
        try:
            image = await self.frame_source.fetch()
        except LoadFailure as e:
            logger.error(f"Failed to load frame: {e}")
            self._set_status(STATUS_FRAME_FAILED)
            return False
        return await self.load_image(image)

    # ============================================================
    # POINTER INTERACTION
    # ============================================================

    async def on_pointer_down(self, event: PointerEvent, box: DisplayBox) -> bool:
        """
        Add a clicked point and decode.

        Returns:
            True if a decode ran or was folded into a running one.
        """
        if not self._is_ready():
            return False
        point = click_to_point(event, box)
        if point is None:
            return False
        self.points.add_point(point)
        return await self._request_decode()

    async def on_pointer_move(self, event: PointerEvent, box: DisplayBox) -> bool:
        """Follow the cursor with a single hover point (hover mode only)."""
        if not self._is_ready():
            return False
        if not self.points.set_hover_point(to_point(event, box)):
            return False
        return await self._request_decode()

    async def _request_decode(self) -> bool:
        try:
            await self.coordinator.request_decode()
        except DecodeRefused as e:
            logger.debug(f"Decode refused: {e}")
            return False
        except DecodeFailure as e:
            self._set_status(f"Decode failed: {e}")
            return False
        return True

    def _on_mask(self, selected: SelectedMask):
        if self._image is None:
            return
        self._selected = selected
        self._overlay = self.renderer.render(
            selected,
            dimensions=self._image.shape[:2],
            into=self._overlay,
        )

    # ============================================================
    # CLEAR / RESET
    # ============================================================

    def _teardown_points(self):
        self.points.clear()
        self.coordinator.invalidate()
        self._selected = None

    def clear_points(self):
        """Drop all points and blank the overlay; the image stays loaded."""
        self._teardown_points()
        if self._overlay is not None:
            self._overlay.clear()

    def reset_image(self):
        """Drop the image, its embedding and every derived buffer."""
        self._teardown_points()
        self.embeddings.invalidate()
        self._image = None
        self._overlay = None
        self._state = SessionState.IDLE
        self._set_status(STATUS_READY)

    # ============================================================
    # EXPORT
    # ============================================================

    async def export_cut(self) -> ExportResult:
        """
        Cut the masked region out of the image and hand it to both sinks.
        """
        result = ExportResult()
        if not self.export_enabled or self._overlay is None or self._image is None:
            result.errors["cut"] = "Nothing to export"
            logger.warning("Export requested with no mask")
            return result

        try:
            cut = self.extractor.extract(self._overlay, self._image)
            result.png = self.extractor.encode_png(cut)
        except ValueError as e:
            logger.error(f"Failed to build cut-out: {e}")
            result.errors["cut"] = str(e)
            self._set_status(f"{STATUS_CUT_FAILED}: {e}")
            return result

        try:
            result.local_path = self.local_sink.save(result.png)
        except OSError as e:
            logger.error(f"Failed to save mask locally: {e}")
            result.errors["local"] = str(e)

        self._set_status(STATUS_SENDING)
        try:
            await self.mask_sink.send(result.png)
            result.uploaded = True
            self._set_status(STATUS_SENT)
        except UploadFailure as e:
            logger.error(f"Failed to send mask: {e}")
            result.errors["upload"] = str(e)
            self._set_status(STATUS_SEND_FAILED)

        return result
