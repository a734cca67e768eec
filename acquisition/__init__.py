"""Acquisition control package."""

from .exceptions import AcquisitionError, InvalidTransitionError
from .machine import AcquisitionStateMachine
from .tracking import TrackingMonitor
from .types import SEARCH_MESSAGE, AcquisitionState, OverlaySurface

__all__ = [
    "AcquisitionError",
    "AcquisitionState",
    "AcquisitionStateMachine",
    "InvalidTransitionError",
    "OverlaySurface",
    "SEARCH_MESSAGE",
    "TrackingMonitor",
]
