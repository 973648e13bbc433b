"""
Transport Module - UDP broadcast send/receive

Thin datagram pipe used by the peer discovery protocol and the chat channel.
"""

from .broadcast import (
    BROADCAST_ADDR,
    MAX_DATAGRAM,
    BroadcastReceiver,
    BroadcastTransmitter,
    check_datagram_size,
    open_broadcast_socket,
)
from .codec import JsonCodec
from .localip import get_localip, make_identity

__all__ = [
    'BROADCAST_ADDR',
    'MAX_DATAGRAM',
    'BroadcastReceiver',
    'BroadcastTransmitter',
    'check_datagram_size',
    'open_broadcast_socket',
    'JsonCodec',
    'get_localip',
    'make_identity',
]
