from __future__ import annotations


class PosterStudioError(Exception):
    """Base class for errors raised by poster_studio."""


class InvalidDimension(PosterStudioError, ValueError):
    """A width or height was zero or negative."""


class ImageLoadError(PosterStudioError):
    """A source or logo image could not be decoded."""


class EncodingError(PosterStudioError):
    """A surface could not be encoded to the requested format."""


class ProviderError(PosterStudioError):
    """The generative backend was unavailable or returned nothing usable."""


class SessionNotFound(PosterStudioError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"mask session '{self.session_id}' not found"
