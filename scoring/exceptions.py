"""Custom exceptions for scoring service calls."""


class ScoringError(Exception):
    """Base scoring service exception."""


class UploadError(ScoringError):
    """An upload attempt failed; the caller decides whether to retry."""


class NetworkError(UploadError):
    """Transport failure or non-success HTTP status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class UploadTimeout(UploadError):
    """The upload did not complete within the configured bound."""


class DecodeError(UploadError):
    """The response body does not match the payload schema."""


class EncodeError(UploadError):
    """The region image could not be encoded as JPEG."""


class PollError(ScoringError):
    """A poll tick produced nothing usable."""


class NoData(PollError):
    """The game endpoint gave no usable response."""


class PollDecodeError(PollError):
    """The polled body does not match the payload schema."""
