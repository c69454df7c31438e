"""
Local frame bridge.

Small HTTP companion that connects a host application to the
segmentation session:

- GET  /frame/current.png  serves the most recently published frame
- POST /mask               stores a posted PNG cut-out under a unique name
- GET  /<path>             serves files from an optional web root
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Union
import numpy as np
from numpy.typing import NDArray
import cv2
from aiohttp import web
from loguru import logger

from samcut.io.exporters import unique_mask_path


CURRENT_FRAME_NAME = "current_frame.png"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

CONTENT_TYPES = {
    ".html": "text/html",
    ".js": "text/javascript",
    ".css": "text/css",
    ".png": "image/png",
}


class FrameBridgeServer:
    """
    aiohttp server exchanging frames and masks through an export directory.

    Guarantees:
    - A posted mask never overwrites an earlier one
    - Static files are only served from inside the web root
    """

    def __init__(
        self,
        export_dir: Union[str, Path],
        host: str = "127.0.0.1",
        port: int = 17860,
        web_root: Optional[Union[str, Path]] = None,
        on_mask: Optional[Callable[[Path], None]] = None,
    ):
        """
        Args:
            export_dir: Directory holding current_frame.png and saved masks
            host: Bind address
            port: Bind port
            web_root: Optional directory served for other GET paths
            on_mask: Called with the path of every saved mask
        """
        self.export_dir = Path(export_dir)
        self.host = host
        self.port = port
        self.web_root = Path(web_root).resolve() if web_root else None
        self._on_mask = on_mask

        # State
        self._runner: Optional[web.AppRunner] = None
        self.saved_masks: List[Path] = []

    @property
    def frame_path(self) -> Path:
        return self.export_dir / CURRENT_FRAME_NAME

    def make_app(self) -> web.Application:
        app = web.Application(client_max_size=64 * 1024 * 1024)
        app.router.add_get("/frame/current.png", self._handle_frame)
        app.router.add_post("/mask", self._handle_mask)
        app.router.add_get("/{tail:.*}", self._handle_static)
        return app

    async def start(self):
        self.export_dir.mkdir(parents=True, exist_ok=True)
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(f"Frame bridge listening on http://{self.host}:{self.port}")

    async def stop(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Frame bridge stopped")

    def publish_frame(self, image: NDArray[np.uint8]) -> Path:
        """
        Write a frame as current_frame.png.

        Args:
            image: RGB or RGBA image
        """
        self.export_dir.mkdir(parents=True, exist_ok=True)
        if image.ndim == 3 and image.shape[2] == 4:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
        else:
            bgr = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
        if not cv2.imwrite(str(self.frame_path), bgr):
            raise IOError(f"Could not write {self.frame_path}")
        logger.debug(f"Published frame {image.shape[1]}x{image.shape[0]}")
        return self.frame_path

    # ============================================================
    # HANDLERS
    # ============================================================

    async def _handle_frame(self, request: web.Request) -> web.Response:
        if not self.frame_path.exists():
            return web.Response(status=404, text=f"{CURRENT_FRAME_NAME} not found")
        return web.Response(
            body=self.frame_path.read_bytes(),
            content_type="image/png",
            headers={"Cache-Control": "no-store"},
        )

    async def _handle_mask(self, request: web.Request) -> web.Response:
        body = await request.read()
        if not body.startswith(PNG_SIGNATURE):
            logger.warning(f"Rejected mask upload ({len(body)} bytes, not a PNG)")
            return web.Response(status=400, text="Expected a PNG body")

        self.export_dir.mkdir(parents=True, exist_ok=True)
        path = unique_mask_path(self.export_dir)
        path.write_bytes(body)
        self.saved_masks.append(path)
        logger.info(f"Saved posted mask to {path} ({len(body)} bytes)")

        if self._on_mask is not None:
            self._on_mask(path)
        return web.Response(text="OK")

    async def _handle_static(self, request: web.Request) -> web.Response:
        if self.web_root is None:
            raise web.HTTPNotFound()

        rel = request.match_info.get("tail", "") or "index.html"
        target = (self.web_root / rel).resolve()
        if self.web_root not in target.parents or not target.is_file():
            logger.debug(f"Static file not found for /{rel}")
            raise web.HTTPNotFound()

        content_type = CONTENT_TYPES.get(target.suffix, "application/octet-stream")
        return web.Response(body=target.read_bytes(), content_type=content_type)
