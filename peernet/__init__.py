"""
peernet - LAN peer discovery over UDP broadcast

Processes on the same broadcast domain announce themselves with periodic
heartbeats and detect each other's joins and leaves without a directory.
"""

from .discovery import (
    LivenessTable,
    MembershipUpdate,
    PeerReceiver,
    PeerTransmitter,
    UpdateChannel,
)
from .errors import ConfigError, DecodeError, PeernetError, SinkClosedError, TransportError
from .transport import BroadcastReceiver, BroadcastTransmitter, JsonCodec, get_localip

__version__ = '1.0.0'

__all__ = [
    'LivenessTable',
    'MembershipUpdate',
    'PeerReceiver',
    'PeerTransmitter',
    'UpdateChannel',
    'ConfigError',
    'DecodeError',
    'PeernetError',
    'SinkClosedError',
    'TransportError',
    'BroadcastReceiver',
    'BroadcastTransmitter',
    'JsonCodec',
    'get_localip',
]
