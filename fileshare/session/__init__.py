"""
Session Module - Shared Transfer State

The pieces of state every request handler sees: who is connected,
how far the transfer has got, what happened so far, and who is watching.
"""

from .log import TransferLog, LOG_CAPACITY
from .gate import AdmissionGate
from .status import TransferStatus, StatusSnapshot, Mode, Phase
from .broadcaster import EventBroadcaster, SUBSCRIBER_BUFFER

__all__ = [
    'TransferLog',
    'LOG_CAPACITY',
    'AdmissionGate',
    'TransferStatus',
    'StatusSnapshot',
    'Mode',
    'Phase',
    'EventBroadcaster',
    'SUBSCRIBER_BUFFER',
]
