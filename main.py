#!/usr/bin/env python3
"""
samcut - interactive point-prompt segmentation

Main entry point. Opens an image, lets you click on objects and cuts the
selected mask out as a transparent PNG.

Usage:
    python main.py [--config CONFIG_PATH] [--image PATH | --from-bridge]
    python main.py --bridge-only

Mouse Controls:
    Move         - Preview mask under the cursor (until the first click)
    Left click   - Add positive point
    Right click  - Add negative point

Keyboard Controls:
    C     - Clear points
    R     - Reset image
    X     - Cut out and export the mask
    L     - Load the current frame from the bridge
    M     - Cycle model (slimsam, sam_vit_base, sam_vit_large)
    Q     - Quit
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional, Set

import cv2
import numpy as np
from loguru import logger

from samcut.bridge.server import FrameBridgeServer
from samcut.core.config import SessionConfig, load_config
from samcut.core.contracts import PointLabel
from samcut.interaction.pointer import (
    BUTTON_LEFT,
    BUTTON_MIDDLE,
    BUTTON_RIGHT,
    DisplayBox,
    PointerEvent,
)
from samcut.segmentation.backends import SamBackend
from samcut.session.controller import SessionController


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()  # Remove default handler

    # Console output with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    # File output
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# OUTPUT RENDERER
# ============================================================

class SessionWindow:
    """Draws the image, overlay, points and status line."""

    POSITIVE_COLOR = (0, 200, 0)
    NEGATIVE_COLOR = (0, 0, 230)

    def __init__(self, window_name: str = "samcut", overlay_opacity: float = 0.5):
        self.window_name = window_name
        self.overlay_opacity = overlay_opacity

        cv2.namedWindow(self.window_name, cv2.WINDOW_AUTOSIZE)

    def render(self, session: SessionController):
        if session.image is None:
            frame = np.zeros((360, 640, 3), dtype=np.uint8)
        else:
            frame = cv2.cvtColor(session.image[:, :, :3], cv2.COLOR_RGB2BGR)

            overlay = session.overlay
            if overlay is not None and not overlay.is_empty:
                color = cv2.cvtColor(overlay.rgba, cv2.COLOR_RGBA2BGRA)[:, :, :3]
                alpha = (overlay.alpha.astype(np.float32) / 255.0 * self.overlay_opacity)[:, :, None]
                frame = (frame * (1 - alpha) + color * alpha).astype(np.uint8)

            h, w = frame.shape[:2]
            for p in session.points.points:
                center = (int(p.x * (w - 1)), int(p.y * (h - 1)))
                c = self.POSITIVE_COLOR if p.label == PointLabel.POSITIVE else self.NEGATIVE_COLOR
                cv2.circle(frame, center, 5, c, -1)
                cv2.circle(frame, center, 6, (255, 255, 255), 1)

        self._draw_status(frame, session)
        cv2.imshow(self.window_name, frame)

    def _draw_status(self, frame: np.ndarray, session: SessionController):
        h, w = frame.shape[:2]

        overlay = frame.copy()
        cv2.rectangle(overlay, (0, h - 50), (w, h), (0, 0, 0), -1)
        cv2.addWeighted(overlay, 0.6, frame, 0.4, 0, frame)

        cv2.putText(
            frame, session.status, (10, h - 30),
            cv2.FONT_HERSHEY_SIMPLEX, 0.55, (255, 255, 0), 1
        )
        help_text = f"[{session.model_key or '-'}] C:Clear R:Reset X:Export L:Load M:Model Q:Quit"
        cv2.putText(
            frame, help_text, (10, h - 10),
            cv2.FONT_HERSHEY_SIMPLEX, 0.45, (200, 200, 200), 1
        )

    def close(self):
        cv2.destroyAllWindows()


# ============================================================
# MAIN APPLICATION
# ============================================================

class SamCutApp:
    """Binds OpenCV mouse and keyboard events to a SessionController."""

    def __init__(self, config: SessionConfig, serve_bridge: bool = False):
        self.config = config
        self.session = SessionController(
            SamBackend(config.model_ids, device=config.device),
            config=config,
        )
        self.window = SessionWindow()
        self.bridge = FrameBridgeServer(
            export_dir=config.export_dir,
            host=config.bridge_host,
            port=config.bridge_port,
            web_root=config.web_root,
        ) if serve_bridge else None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Task] = set()
        self._running = False

    def _spawn(self, coro):
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("Session task failed")

    def _display_box(self) -> Optional[DisplayBox]:
        if self.session.image is None:
            return None
        h, w = self.session.image.shape[:2]
        return DisplayBox(0, 0, w, h)

    def on_mouse(self, event: int, x: int, y: int, flags: int, param=None):
        """OpenCV mouse callback."""
        box = self._display_box()
        if box is None:
            return

        if event == cv2.EVENT_MOUSEMOVE:
            self._spawn(self.session.on_pointer_move(PointerEvent(x, y), box))
        elif event == cv2.EVENT_LBUTTONDOWN:
            self._spawn(self.session.on_pointer_down(PointerEvent(x, y, BUTTON_LEFT), box))
        elif event == cv2.EVENT_RBUTTONDOWN:
            self._spawn(self.session.on_pointer_down(PointerEvent(x, y, BUTTON_RIGHT), box))
        elif event == cv2.EVENT_MBUTTONDOWN:
            self._spawn(self.session.on_pointer_down(PointerEvent(x, y, BUTTON_MIDDLE), box))

    def on_key(self, key: int):
        if key == ord('q'):
            self._running = False
        elif key == ord('c'):
            self.session.clear_points()
        elif key == ord('r'):
            self.session.reset_image()
        elif key == ord('x'):
            self._spawn(self._export())
        elif key == ord('l'):
            self._spawn(self.session.load_from_bridge())
        elif key == ord('m'):
            self._spawn(self.session.change_model(self._next_model_key()))

    def _next_model_key(self) -> str:
        keys = list(self.config.model_ids)
        current = self.session.model_key or self.config.model_key
        index = keys.index(current) if current in keys else -1
        return keys[(index + 1) % len(keys)]

    async def _export(self):
        result = await self.session.export_cut()
        if result.local_path:
            logger.info(f"Cut-out saved: {result.local_path}")
        if not result.success:
            logger.warning(f"Export incomplete: {result.error_message}")

    async def run(self, image_path: Optional[str] = None, from_bridge: bool = False):
        """Run the interactive window until Q is pressed."""
        self._loop = asyncio.get_running_loop()
        cv2.setMouseCallback(self.window.window_name, self.on_mouse)

        if self.bridge is not None:
            await self.bridge.start()

        if image_path:
            self._spawn(self.session.load_image_file(image_path))
        elif from_bridge:
            self._spawn(self.session.load_from_bridge())
        else:
            self._spawn(self.session.change_model(self.config.model_key))

        logger.info("Starting samcut. Press Q to quit")
        self._running = True
        try:
            while self._running:
                self.window.render(self.session)
                key = cv2.waitKey(15) & 0xFF
                if key != 0xFF:
                    self.on_key(key)
                # Let session tasks progress between frames
                await asyncio.sleep(0.005)
        finally:
            for task in list(self._tasks):
                task.cancel()
            if self.bridge is not None:
                await self.bridge.stop()
            self.window.close()
            logger.info("samcut stopped")


async def run_bridge_only(config: SessionConfig):
    """Serve the frame bridge until interrupted."""
    bridge = FrameBridgeServer(
        export_dir=config.export_dir,
        host=config.bridge_host,
        port=config.bridge_port,
        web_root=config.web_root,
    )
    await bridge.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await bridge.stop()


# ============================================================
# ENTRY POINT
# ============================================================

def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="samcut - interactive point-prompt segmentation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--image", "-i",
        type=str,
        default=None,
        help="Image file to open",
    )
    source.add_argument(
        "--from-bridge",
        action="store_true",
        help="Load the current frame from the bridge on start",
    )

    parser.add_argument(
        "--serve-bridge",
        action="store_true",
        help="Also run the frame bridge server in this process",
    )

    parser.add_argument(
        "--bridge-only",
        action="store_true",
        help="Run only the frame bridge server (no window)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default="logs/samcut.log",
        help="Log file path (default: logs/samcut.log)",
    )

    args = parser.parse_args()

    # Setup logging
    setup_logging(args.log_level, args.log_file)

    config = load_config(args.config)

    try:
        if args.bridge_only:
            asyncio.run(run_bridge_only(config))
        else:
            app = SamCutApp(config, serve_bridge=args.serve_bridge)
            asyncio.run(app.run(image_path=args.image, from_bridge=args.from_bridge))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
