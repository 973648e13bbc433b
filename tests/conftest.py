import socket
from typing import List

import pytest

from peernet.discovery import UpdateChannel


class ScriptExhausted(Exception):
    """Raised by ScriptedConn once every scripted event was consumed."""


class ScriptedConn:
    """
    Stand-in for BroadcastReceiver.

    events is a list of (time, item). Each receive() moves the clock to
    `time`, then returns item if it is bytes or raises it if it is an
    exception.
    """

    def __init__(self, events, port: int = 9877):
        self.events = list(events)
        self.port = port
        self.now = 0.0
        self.timeouts: List[float] = []
        self.closed = False

    def clock(self) -> float:
        return self.now

    async def receive(self, timeout=None) -> bytes:
        self.timeouts.append(timeout)
        if not self.events:
            raise ScriptExhausted()
        self.now, item = self.events.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self):
        self.closed = True


class RecordingConn:
    """Stand-in for BroadcastTransmitter that records every datagram."""

    def __init__(self, port: int = 9877, fail_with: Exception = None):
        self.port = port
        self.sent: List[bytes] = []
        self.fail_with = fail_with
        self.closed = False

    async def send(self, data: bytes):
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append(data)

    def close(self):
        self.closed = True


async def drain(channel: UpdateChannel) -> list:
    """Read every update currently queued on a channel."""
    items = []
    while channel.qsize():
        items.append(await channel.get())
    return items


def _free_udp_port() -> int:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]
    finally:
        s.close()


@pytest.fixture
def free_port() -> int:
    return _free_udp_port()


@pytest.fixture
def free_ports():
    """Two distinct free UDP ports."""
    first = _free_udp_port()
    second = _free_udp_port()
    while second == first:
        second = _free_udp_port()
    return first, second
