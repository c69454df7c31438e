"""
Session error hierarchy.

Every failure raised inside the session engine derives from SessionError
so the controller can report it as status text without crashing.
"""

from __future__ import annotations


class SessionError(Exception):
    """Base class for recoverable session failures."""


class LoadFailure(SessionError):
    """Frame fetch or image read failed. Session state is left untouched."""


class EmbeddingFailure(SessionError):
    """The backend could not embed the image."""


class DecodeFailure(SessionError):
    """The backend failed while decoding masks."""


class DecodeRefused(SessionError):
    """A decode was requested without an embedding or without points."""


class UploadFailure(SessionError):
    """The remote mask sink rejected the upload or was unreachable."""


class ModelLoadFailure(SessionError):
    """The requested model could not be loaded."""
