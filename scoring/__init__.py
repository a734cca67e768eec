"""Scoring service client package."""

from .client import UploadClient
from .exceptions import (
    DecodeError,
    EncodeError,
    NetworkError,
    NoData,
    PollDecodeError,
    PollError,
    ScoringError,
    UploadError,
    UploadTimeout,
)
from .polling import PollingSession

__all__ = [
    "DecodeError",
    "EncodeError",
    "NetworkError",
    "NoData",
    "PollDecodeError",
    "PollError",
    "PollingSession",
    "ScoringError",
    "UploadClient",
    "UploadError",
    "UploadTimeout",
]
