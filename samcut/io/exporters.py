"""
Cut-out sinks.

Both sinks receive the same PNG bytes and fail independently.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Optional, Union
import aiohttp
from loguru import logger

from samcut.core.errors import UploadFailure


def unique_mask_path(
    directory: Union[str, Path],
    now: Optional[datetime] = None,
) -> Path:
    """
    Next free sam_mask_YYYYMMDD_HHMMSS_mmm.png path in a directory.

    A numeric suffix (_1, _2, ...) is appended when the timestamped name
    is already taken.
    """
    directory = Path(directory)
    now = now or datetime.now()
    stem = f"sam_mask_{now.strftime('%Y%m%d_%H%M%S')}_{now.microsecond // 1000:03d}"

    path = directory / f"{stem}.png"
    suffix = 1
    while path.exists():
        path = directory / f"{stem}_{suffix}.png"
        suffix += 1
    return path


class LocalExportSink:
    """Writes cut-outs into an export directory."""

    def __init__(self, export_dir: Union[str, Path]):
        self.export_dir = Path(export_dir)

    def save(self, png: bytes) -> Path:
        self.export_dir.mkdir(parents=True, exist_ok=True)
        path = unique_mask_path(self.export_dir)
        path.write_bytes(png)
        logger.info(f"Saved mask to {path}")
        return path


class RemoteMaskSink:
    """Posts cut-outs to the frame bridge's mask endpoint."""

    def __init__(self, url: str, timeout_s: float = 10.0):
        """
        Args:
            url: Full URL of the mask endpoint
            timeout_s: Total request timeout
        """
        self.url = url
        self.timeout_s = timeout_s

    async def send(self, png: bytes):
        """
        Upload PNG bytes.

        Raises:
            UploadFailure: Network error or non-2xx status.
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.url,
                    data=png,
                    headers={"Content-Type": "image/png"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout_s),
                ) as resp:
                    if resp.status < 200 or resp.status >= 300:
                        body = await resp.text()
                        raise UploadFailure(f"Mask upload failed: HTTP {resp.status} {body}".strip())
        except aiohttp.ClientError as e:
            raise UploadFailure(f"Mask upload failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise UploadFailure("Mask upload timed out") from e

        logger.info(f"Sent mask ({len(png)} bytes) to {self.url}")
