"""
Peer Discovery Protocol

Every process runs one PeerTransmitter, broadcasting its identity every
INTERVAL seconds, and one PeerReceiver, which listens for those heartbeats
and reports joins and leaves as MembershipUpdates.

Timing:
- INTERVAL (15 ms) is much shorter than TIMEOUT (100 ms), so several
  heartbeats land inside one timeout window
- The receiver's read timeout equals TIMEOUT; each expiry is a "tick"
  that lets silent peers be evicted even when no traffic arrives

Both run loops are coroutines meant to be wrapped in asyncio tasks.
Cancelling the task stops the loop at its next sleep or receive.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Generic, Optional, Type

from ..errors import DecodeError
from ..transport.broadcast import (
    BROADCAST_ADDR,
    SPURIOUS_RECEIVE_ERRORS,
    BroadcastReceiver,
    BroadcastTransmitter,
)
from ..transport.codec import JsonCodec
from .channel import UpdateChannel
from .membership import LivenessTable, MembershipUpdate, T

logger = logging.getLogger(__name__)

INTERVAL = 0.015  # seconds between heartbeats
TIMEOUT = 0.1  # seconds of silence before a peer is lost

# Smallest timeout/interval ratio that tolerates single dropped heartbeats
MIN_TIMEOUT_RATIO = 5


class PeerTransmitter(Generic[T]):
    """
    Periodically broadcasts this process's identity.

    enable()/disable() may be called from any thread; the change is picked
    up on the next tick.
    """

    def __init__(self, conn: BroadcastTransmitter,
                 identity_type: Type[T] = str,
                 interval: float = INTERVAL):
        self.conn = conn
        self.codec: JsonCodec[T] = JsonCodec(identity_type)
        self.interval = interval

        self._enabled = True
        self._enabled_lock = threading.Lock()

    @classmethod
    def create(cls, port: int, broadcast_addr: str = BROADCAST_ADDR,
               identity_type: Type[T] = str,
               interval: float = INTERVAL) -> 'PeerTransmitter[T]':
        """
        Bind a broadcast socket for announcing on port.

        Raises:
            TransportError: if the socket cannot be set up
        """
        conn = BroadcastTransmitter.create(port, broadcast_addr)
        return cls(conn, identity_type, interval)

    @property
    def is_enabled(self) -> bool:
        with self._enabled_lock:
            return self._enabled

    def enable(self):
        with self._enabled_lock:
            self._enabled = True

    def disable(self):
        with self._enabled_lock:
            self._enabled = False

    async def announce_once(self, identity: T):
        """
        Broadcast identity now, regardless of the enabled flag.

        Raises:
            TransportError: if the send fails
        """
        await self.conn.send(self.codec.encode(identity))

    async def run(self, identity: T):
        """
        Announce identity every interval until cancelled.

        Ticks while disabled send nothing. A failed send raises
        TransportError out of this coroutine; restarting is up to the caller.
        """
        logger.info(f"Announcing {identity} every {self.interval * 1000:.0f} ms "
                    f"on port {self.conn.port}")
        while True:
            await asyncio.sleep(self.interval)
            if not self.is_enabled:
                continue
            await self.announce_once(identity)

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class PeerReceiver(Generic[T]):
    """
    Listens for heartbeats and reports membership changes.

    The liveness table lives inside run(); it is never shared, so it needs
    no locking.
    """

    def __init__(self, conn: BroadcastReceiver,
                 identity_type: Type[T] = str,
                 timeout: float = TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        """
        Args:
            conn: Bound receiving socket
            identity_type: Type heartbeats are decoded into
            timeout: Failure-detection timeout, also the receive timeout
            clock: Monotonic time source (seconds)
        """
        self.conn = conn
        self.codec: JsonCodec[T] = JsonCodec(identity_type)
        self.timeout = timeout
        self._clock = clock

    @classmethod
    def create(cls, port: int, host: str = '',
               identity_type: Type[T] = str,
               timeout: float = TIMEOUT,
               clock: Callable[[], float] = time.monotonic) -> 'PeerReceiver[T]':
        """
        Bind a receiving socket on port.

        Raises:
            TransportError: if the socket cannot be set up
        """
        conn = BroadcastReceiver.create(port, host)
        return cls(conn, identity_type, timeout, clock)

    async def receive(self) -> T:
        """
        Wait up to timeout for one heartbeat.

        Raises:
            TimeoutError: if no datagram arrived in time
            DecodeError: if the datagram is not a valid identity
            TransportError: if the socket failed
        """
        data = await self.conn.receive(self.timeout)
        return self.codec.decode(data)

    async def run(self, sink: UpdateChannel[MembershipUpdate[T]]):
        """
        Track peers and send a MembershipUpdate to sink on every change.

        Runs until cancelled. Ends with SinkClosedError if the sink is
        closed or full, and with TransportError if the socket fails.
        """
        table: LivenessTable[T] = LivenessTable(self.timeout)
        logger.info(f"Listening for peers on port {self.conn.port} "
                    f"(timeout {self.timeout * 1000:.0f} ms)")

        while True:
            peer_id: Optional[T] = None
            try:
                peer_id = await self.receive()
            except TimeoutError:
                logger.debug("PeerReceiver timed out")
            except DecodeError as e:
                logger.warning(f"Ignoring malformed heartbeat: {e}")
            except SPURIOUS_RECEIVE_ERRORS as e:
                logger.debug(f"Ignoring receive error: {e}")

            # Bad datagrams never enter the table but still run the eviction scan
            update = table.step(peer_id, self._clock())
            if update is None:
                continue

            if update.new is not None:
                logger.info(f"Peer joined: {update.new}")
            for lost in update.lost:
                logger.info(f"Peer lost: {lost}")

            sink.send(update)

    def close(self):
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

