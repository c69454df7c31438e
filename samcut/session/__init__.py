"""
Session orchestration.

Image load -> embedding -> point interaction -> decode -> render/export.
"""

from .controller import SessionController
