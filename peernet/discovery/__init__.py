"""
Discovery Module - Peer Membership on the LAN

Peers find each other with periodic UDP broadcast heartbeats:
- PeerTransmitter announces our identity
- PeerReceiver tracks who is alive and reports joins/leaves
"""

from .channel import UpdateChannel
from .membership import LivenessTable, MembershipUpdate, SupportsIdentity
from .peer import INTERVAL, MIN_TIMEOUT_RATIO, TIMEOUT, PeerReceiver, PeerTransmitter

__all__ = [
    'INTERVAL',
    'MIN_TIMEOUT_RATIO',
    'TIMEOUT',
    'LivenessTable',
    'MembershipUpdate',
    'PeerReceiver',
    'PeerTransmitter',
    'SupportsIdentity',
    'UpdateChannel',
]
