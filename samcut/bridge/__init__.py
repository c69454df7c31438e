"""
Local HTTP bridge between a host application and the session.
"""

from .server import FrameBridgeServer, CURRENT_FRAME_NAME
