"""
Membership Tracking

Design Decision: Failure Detector
=================================

Options Considered:
1. Heartbeat + timeout - Every peer broadcasts its identity, silence means gone
2. Ping/ack probing (SWIM-style) - Fewer packets, but needs unicast replies
3. Gossip of membership lists - Converges across hops, far more state

Decision: Heartbeat + timeout
- A single broadcast domain is the whole world, no hops to cover
- Each receiver builds its own view; no agreement between receivers
- Announce interval is kept well below the timeout (>= 5x) so a single
  dropped heartbeat never evicts a live peer

Eviction Scan:
- The whole table is scanned on every receive, including receive timeouts
- O(table size) per datagram; fine for LAN-sized groups

Per-identity lifecycle:
    Unknown -> Live     first announcement        (reported as `new`)
    Live    -> Live     announcement in time      (silent)
    Live    -> Unknown  silence > timeout         (reported as `lost`)
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar


class SupportsIdentity(Protocol):
    """A peer identity: hashable and totally ordered."""

    def __hash__(self) -> int: ...

    def __lt__(self, other: Any) -> bool: ...


T = TypeVar('T', bound=SupportsIdentity)


@dataclass(frozen=True)
class MembershipUpdate(Generic[T]):
    """
    Snapshot of a change in the locally observed peer set.

    Attributes:
        peers: Every live identity after this change, sorted ascending
        new: The identity whose first announcement triggered this update
        lost: Identities evicted for silence in this update, sorted ascending
    """
    peers: Tuple[T, ...] = ()
    new: Optional[T] = None
    lost: Tuple[T, ...] = ()

    def __str__(self) -> str:
        lines = [
            "Peer update:",
            f"  Peers:    {', '.join(map(str, self.peers)) or '-'}",
            f"  New:      {self.new if self.new is not None else '-'}",
            f"  Lost:     {', '.join(map(str, self.lost)) or '-'}",
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return {
            'peers': list(self.peers),
            'new': self.new,
            'lost': list(self.lost),
        }


class LivenessTable(Generic[T]):
    """
    Last-seen times of every peer heard from.

    Owned by a single PeerReceiver loop; not thread-safe. Timestamps come
    from the caller so the table can be driven by a fake clock.
    """

    def __init__(self, timeout: float):
        """
        Args:
            timeout: Seconds of silence after which a peer is evicted
        """
        self.timeout = timeout
        self._last_seen: Dict[T, float] = {}

    def __contains__(self, peer_id: T) -> bool:
        return peer_id in self._last_seen

    def __len__(self) -> int:
        return len(self._last_seen)

    def peers(self) -> List[T]:
        """Live identities, sorted ascending."""
        return sorted(self._last_seen)

    def observe(self, peer_id: T, now: float) -> bool:
        """
        Record an announcement from peer_id.

        Returns:
            True if peer_id was not in the table before
        """
        is_new = peer_id not in self._last_seen
        self._last_seen[peer_id] = now
        return is_new

    def evict(self, now: float) -> List[T]:
        """
        Remove every peer silent for longer than the timeout.

        Returns:
            The evicted identities, sorted ascending
        """
        lost = [
            peer_id for peer_id, seen in self._last_seen.items()
            if now - seen > self.timeout
        ]
        for peer_id in lost:
            del self._last_seen[peer_id]
        return sorted(lost)

    def step(self, peer_id: Optional[T], now: float) -> Optional[MembershipUpdate[T]]:
        """
        Run one detector iteration.

        peer_id is the identity just received, or None when the receive
        timed out. The announcement is recorded before the eviction scan, so
        a peer can never evict itself in the iteration it announced.

        Returns:
            A MembershipUpdate if a peer joined or was lost, else None
        """
        is_new = False
        if peer_id is not None:
            is_new = self.observe(peer_id, now)

        lost = self.evict(now)

        if not is_new and not lost:
            return None

        return MembershipUpdate(
            peers=tuple(self.peers()),
            new=peer_id if is_new else None,
            lost=tuple(lost),
        )
