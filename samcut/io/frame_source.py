"""
Image sources for the session.

- Local image files
- The frame bridge's current-frame endpoint over HTTP
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Union
import numpy as np
from numpy.typing import NDArray
import cv2
import aiohttp
from loguru import logger

from samcut.core.errors import LoadFailure


def decode_image(data: bytes) -> NDArray[np.uint8]:
    """
    Decode encoded image bytes to RGB.

    Raises:
        LoadFailure: The bytes are not a readable image.
    """
    buf = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
    if image is None:
        raise LoadFailure("Could not decode image data")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def load_image_file(path: Union[str, Path]) -> NDArray[np.uint8]:
    """Read an image file as RGB."""
    path = Path(path)
    if not path.exists():
        raise LoadFailure(f"Image not found: {path}")
    image = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if image is None:
        raise LoadFailure(f"Could not read image: {path}")
    logger.info(f"Loaded image {path.name} ({image.shape[1]}x{image.shape[0]})")
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


class RemoteFrameSource:
    """
    Fetches the current frame from the frame bridge.

    Every request bypasses caches so a repeated load always sees the
    newest frame.
    """

    def __init__(self, url: str, timeout_s: float = 10.0):
        """
        Args:
            url: Full URL of the current-frame endpoint
            timeout_s: Total request timeout
        """
        self.url = url
        self.timeout_s = timeout_s

    async def fetch(self) -> NDArray[np.uint8]:
        """
        Download and decode the current frame.

        Raises:
            LoadFailure: Network error, non-2xx status or undecodable body.
        """
        headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    self.url,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_s),
                ) as resp:
                    if resp.status < 200 or resp.status >= 300:
                        raise LoadFailure(f"Frame request failed: HTTP {resp.status}")
                    data = await resp.read()
        except aiohttp.ClientError as e:
            raise LoadFailure(f"Frame request failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise LoadFailure("Frame request timed out") from e

        image = decode_image(data)
        logger.info(f"Fetched frame {image.shape[1]}x{image.shape[0]} from {self.url}")
        return image
