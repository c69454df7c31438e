"""
Session configuration.

Settings are read from a YAML file (config/settings.yaml by default) with
one section per concern. Any key missing from the file keeps its default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import yaml
from loguru import logger


# Hugging Face checkpoints for each selectable model key
MODEL_IDS = {
    "slimsam": "nielsr/slimsam-77-uniform",
    "sam_vit_base": "facebook/sam-vit-base",
    "sam_vit_large": "facebook/sam-vit-large",
}

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"


@dataclass
class SessionConfig:
    """Configuration for one segmentation session and its bridge."""
    # Local frame bridge
    bridge_host: str = "127.0.0.1"
    bridge_port: int = 17860
    frame_path: str = "/frame/current.png"
    mask_path: str = "/mask"
    export_dir: str = "export"
    web_root: Optional[str] = None

    # Model
    model_key: str = "slimsam"
    model_ids: Dict[str, str] = field(default_factory=lambda: dict(MODEL_IDS))
    device: str = "auto"

    # Rendering
    highlight_color: Tuple[int, int, int, int] = (0, 114, 189, 255)

    # Network
    http_timeout_s: float = 10.0

    @property
    def bridge_url(self) -> str:
        return f"http://{self.bridge_host}:{self.bridge_port}"

    @property
    def frame_url(self) -> str:
        return self.bridge_url + self.frame_path

    @property
    def mask_url(self) -> str:
        return self.bridge_url + self.mask_path

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "SessionConfig":
        """Build a config from the nested settings layout."""
        data = data or {}
        bridge = data.get('bridge', {}) or {}
        model = data.get('model', {}) or {}
        export = data.get('export', {}) or {}
        render = data.get('render', {}) or {}
        http = data.get('http', {}) or {}

        model_ids = dict(MODEL_IDS)
        model_ids.update(model.get('ids', {}) or {})

        color = tuple(int(c) for c in render.get('highlight_color', (0, 114, 189, 255)))
        if len(color) != 4:
            raise ValueError(f"highlight_color needs 4 channels, got {len(color)}")

        config = cls(
            bridge_host=bridge.get('host', "127.0.0.1"),
            bridge_port=int(bridge.get('port', 17860)),
            frame_path=bridge.get('frame_path', "/frame/current.png"),
            mask_path=bridge.get('mask_path', "/mask"),
            export_dir=str(export.get('dir', "export")),
            web_root=bridge.get('web_root'),
            model_key=model.get('key', "slimsam"),
            model_ids=model_ids,
            device=model.get('device', "auto"),
            highlight_color=color,
            http_timeout_s=float(http.get('timeout_s', 10.0)),
        )

        if config.model_key not in config.model_ids:
            raise ValueError(
                f"Unknown model key '{config.model_key}', "
                f"expected one of {sorted(config.model_ids)}"
            )
        return config


def load_config(path: Optional[Union[str, Path]] = None) -> SessionConfig:
    """
    Load session configuration.

    Args:
        path: YAML file to read. Falls back to config/settings.yaml and
            then to built-in defaults when the file does not exist.
    """
    candidates = [Path(path)] if path else []
    candidates.append(DEFAULT_CONFIG_PATH)

    for candidate in candidates:
        if candidate.exists():
            with open(candidate) as f:
                data = yaml.safe_load(f)
            logger.info(f"Loaded configuration from {candidate}")
            return SessionConfig.from_dict(data)

    if path:
        logger.warning(f"Config file {path} not found, using defaults")
    return SessionConfig()
