"""Acquisition front-end backends."""

from .base import AcquisitionMode, BackendError, InstrumentBackend, TriggerSlope, TriggerType
from .simulated import SimulatedBackend

__all__ = [
    "InstrumentBackend",
    "BackendError",
    "AcquisitionMode",
    "TriggerSlope",
    "TriggerType",
    "SimulatedBackend",
]
