"""Custom exceptions for acquisition control."""


class AcquisitionError(Exception):
    """Base acquisition exception."""


class InvalidTransitionError(AcquisitionError):
    """Raised when a request does not apply to the current state."""
