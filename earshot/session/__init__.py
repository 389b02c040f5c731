"""Recording sessions and endpointing."""

from .capture_session import CaptureSession
from .endpointing import EndpointingStateMachine, EndpointTimer

__all__ = [
    'CaptureSession',
    'EndpointingStateMachine',
    'EndpointTimer',
]
