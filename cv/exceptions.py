"""Exceptions raised by a single detection attempt.

None of these leave the detection pipeline: the gate logs them and the next
frame is tried instead.
"""


class DetectionError(Exception):
    """Base detection exception."""


class NoRegionFound(DetectionError):
    """No candidate passed the acceptance filters."""


class CorrectionFailed(DetectionError):
    """Perspective correction produced no output image."""


class HandlerError(DetectionError):
    """The underlying rectangle detector raised."""


class DetectionBusyError(DetectionError):
    """A detection attempt is already in flight."""
