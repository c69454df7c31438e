"""
Image input and cut-out output.

Responsibilities:
- Local file and bridge frame loading
- Local PNG export with unique filenames
- Mask upload to the bridge
"""

from .frame_source import RemoteFrameSource, load_image_file, decode_image
from .exporters import LocalExportSink, RemoteMaskSink, unique_mask_path
