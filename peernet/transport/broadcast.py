"""
UDP Broadcast Transport

Design Decision: Broadcast vs Multicast
========================================

Options:
1. UDP Broadcast (255.255.255.255 or subnet broadcast)
   - Simple, works on most LANs
   - Doesn't cross routers
   - Some networks block it

2. UDP Multicast
   - Can cross routers (if configured)
   - More complex setup (group membership, TTL)

Decision: UDP Broadcast
- Peers only ever need to reach their own broadcast domain
- Datagram boundaries are preserved, so one receive == one value
- Fire-and-forget: nothing here retries or acknowledges

Sockets are plain non-blocking sockets driven by the running event loop
(loop.sock_sendto / loop.sock_recvfrom). Every OSError is reported as a
TransportError so callers only deal with one failure type.
"""

import asyncio
import logging
import socket
from typing import Any, Optional, Tuple

from ..errors import DecodeError, TransportError
from .codec import JsonCodec, encode_value

logger = logging.getLogger(__name__)

BROADCAST_ADDR = '255.255.255.255'

# Largest UDP payload over IPv4; receivers read this much so nothing is truncated
MAX_DATAGRAM = 65507
BUFFER_SIZE = MAX_DATAGRAM

# Receive errors caused by ICMP replies to our own sends; not fatal
SPURIOUS_RECEIVE_ERRORS = (ConnectionRefusedError, ConnectionResetError)


def _enable_reuse(sock: socket.socket):
    """Allow several processes on one host to share a broadcast port."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    # Try to set SO_REUSEPORT if available (for macOS/Linux)
    if hasattr(socket, 'SO_REUSEPORT'):
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
        except OSError:
            pass


def open_broadcast_socket(bind_addr: Tuple[str, int]) -> socket.socket:
    """
    Create a non-blocking, broadcast-capable UDP socket bound to bind_addr.

    Raises:
        TransportError: if the socket cannot be created, configured or bound
    """
    sock = None
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        _enable_reuse(sock)
        sock.bind(bind_addr)
        sock.setblocking(False)
        return sock
    except OSError as e:
        if sock is not None:
            sock.close()
        raise TransportError(
            f"Cannot bind broadcast socket to {bind_addr[0] or '*'}:{bind_addr[1]}: {e}"
        ) from e


def check_datagram_size(data: bytes):
    """
    Raises:
        TransportError: if data cannot travel in one datagram
    """
    if len(data) > MAX_DATAGRAM:
        raise TransportError(
            f"Datagram of {len(data)} bytes exceeds the {MAX_DATAGRAM} byte limit"
        )


class BroadcastTransmitter:
    """
    Sends encoded values to every host on the broadcast domain.

    Usage:
        tx = BroadcastTransmitter.create(9876)
        await tx.transmit({"msg": "hello"})
    """

    def __init__(self, sock: socket.socket, port: int,
                 broadcast_addr: str = BROADCAST_ADDR,
                 codec: Optional[JsonCodec] = None):
        self._socket = sock
        self.port = port
        self.broadcast_addr = broadcast_addr
        self.codec = codec

    @classmethod
    def create(cls, port: int, broadcast_addr: str = BROADCAST_ADDR,
               codec: Optional[JsonCodec] = None) -> 'BroadcastTransmitter':
        """Bind an outbound socket targeting broadcast_addr:port."""
        sock = open_broadcast_socket(('', 0))
        logger.debug(f"Broadcast transmitter ready for {broadcast_addr}:{port}")
        return cls(sock, port, broadcast_addr, codec)

    @property
    def target(self) -> Tuple[str, int]:
        return (self.broadcast_addr, self.port)

    async def send(self, data: bytes):
        """
        Send one datagram to the broadcast address.

        Raises:
            TransportError: if the socket is closed, the datagram is larger
                than MAX_DATAGRAM, or the send fails
        """
        if self._socket is None:
            raise TransportError("Transmitter is closed")
        check_datagram_size(data)

        loop = asyncio.get_running_loop()
        try:
            await loop.sock_sendto(self._socket, data, self.target)
        except OSError as e:
            raise TransportError(f"Broadcast to {self.target[0]}:{self.target[1]} failed: {e}") from e

    async def transmit(self, value: Any):
        """Encode a value and send it."""
        if self.codec is not None:
            data = self.codec.encode(value)
        else:
            data = encode_value(value)
        await self.send(data)

    async def run(self, outbox: asyncio.Queue):
        """
        Broadcast every value put on outbox, until cancelled.

        A failed send ends the loop with TransportError.
        """
        while True:
            value = await outbox.get()
            await self.transmit(value)

    def close(self):
        if self._socket:
            self._socket.close()
            self._socket = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class BroadcastReceiver:
    """
    Receives datagrams sent to a broadcast port.

    Each receive() returns exactly one whole datagram.
    """

    def __init__(self, sock: socket.socket, port: int,
                 codec: Optional[JsonCodec] = None,
                 buffer_size: int = BUFFER_SIZE):
        self._socket = sock
        self.port = port
        self.codec = codec or JsonCodec(Any)
        self.buffer_size = buffer_size

    @classmethod
    def create(cls, port: int, host: str = '',
               codec: Optional[JsonCodec] = None,
               buffer_size: int = BUFFER_SIZE) -> 'BroadcastReceiver':
        """Bind a receiving socket on host:port (wildcard by default)."""
        sock = open_broadcast_socket((host, port))
        logger.debug(f"Broadcast receiver listening on {host or '*'}:{port}")
        return cls(sock, port, codec, buffer_size)

    async def receive(self, timeout: Optional[float] = None) -> bytes:
        """
        Wait for one datagram.

        Raises:
            TimeoutError: if nothing arrives within timeout seconds
            ConnectionRefusedError / ConnectionResetError: spurious ICMP errors
            TransportError: for any other socket failure
        """
        if self._socket is None:
            raise TransportError("Receiver is closed")

        loop = asyncio.get_running_loop()
        try:
            data, _ = await asyncio.wait_for(
                loop.sock_recvfrom(self._socket, self.buffer_size),
                timeout=timeout,
            )
        except (TimeoutError,) + SPURIOUS_RECEIVE_ERRORS:
            # TimeoutError is an OSError subclass; keep it distinct
            raise
        except OSError as e:
            raise TransportError(f"Receive on port {self.port} failed: {e}") from e
        return data

    async def receive_value(self, timeout: Optional[float] = None) -> Any:
        """Receive one datagram and decode it with the receiver's codec."""
        data = await self.receive(timeout)
        return self.codec.decode(data)

    async def run(self, inbox: asyncio.Queue):
        """
        Put every decoded value on inbox, until cancelled.

        Undecodable datagrams are logged and dropped.
        """
        while True:
            try:
                value = await self.receive_value()
            except DecodeError as e:
                logger.warning(f"Dropping broadcast datagram: {e}")
                continue
            except SPURIOUS_RECEIVE_ERRORS as e:
                logger.debug(f"Ignoring receive error on port {self.port}: {e}")
                continue
            await inbox.put(value)

    def close(self):
        if self._socket:
            self._socket.close()
            self._socket = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
