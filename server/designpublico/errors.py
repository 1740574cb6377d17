"""Application error types.

Service code raises these and stays HTTP-agnostic; the API layer maps them to
JSON responses of the form ``{"message": ..., "error": <code>}``.
"""

from __future__ import annotations


class DesignPublicoError(Exception):
    """Base class for all application errors."""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"message": self.message, "error": self.code}


class NotFoundError(DesignPublicoError):
    code = "NOT_FOUND"
    status_code = 404


class BadRequestError(DesignPublicoError):
    code = "BAD_REQUEST"
    status_code = 400


class UpstreamUnavailableError(DesignPublicoError):
    """A content store or image CDN could not be reached or answered badly."""

    code = "UPSTREAM_UNAVAILABLE"
    status_code = 502


class ImageProcessingError(DesignPublicoError):
    """Decoding or encoding an image failed."""

    code = "PROCESSING_ERROR"
    status_code = 500
