"""
Peer Node - Main Controller

Runs every component a process needs to take part in the LAN:
- PeerTransmitter announcing our identity
- PeerReceiver tracking who else is alive
- A broadcast chat channel (ChatPacket values) on a second port

Updates and chat packets are fanned out to registered callbacks.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from pydantic import BaseModel

from .config import Config
from .discovery import MembershipUpdate, PeerReceiver, PeerTransmitter, UpdateChannel
from .errors import SinkClosedError
from .transport import (
    BroadcastReceiver,
    BroadcastTransmitter,
    JsonCodec,
    check_datagram_size,
    make_identity,
)

logger = logging.getLogger(__name__)

# How many received chat packets to keep for the API
MESSAGE_HISTORY = 100


class ChatPacket(BaseModel):
    """A free-text message broadcast to every node."""
    msg: str
    timestamp: int
    sender: Optional[str] = None


UpdateCallback = Callable[[MembershipUpdate[str]], None]
MessageCallback = Callable[[ChatPacket], None]


class PeerNode:
    """
    A complete peernet node.

    Usage:
        node = PeerNode(config)
        node.on_update(print)
        await node.start()
        ...
        await node.stop()
    """

    def __init__(self, config: Config = None):
        """
        Initialize a node.

        Args:
            config: Node configuration (uses defaults if not provided)
        """
        self.config = (config or Config()).validate()
        self.identity: Optional[str] = self.config.identity

        self.transmitter: Optional[PeerTransmitter[str]] = None
        self.receiver: Optional[PeerReceiver[str]] = None
        self.updates: Optional[UpdateChannel[MembershipUpdate[str]]] = None

        self._chat_codec = JsonCodec(ChatPacket)
        self._chat_tx: Optional[BroadcastTransmitter] = None
        self._chat_rx: Optional[BroadcastReceiver] = None
        self._outbox: Optional[asyncio.Queue] = None
        self._inbox: Optional[asyncio.Queue] = None

        self._update_callbacks: List[UpdateCallback] = []
        self._message_callbacks: List[MessageCallback] = []

        self._membership: MembershipUpdate[str] = MembershipUpdate()
        self._messages: Deque[ChatPacket] = deque(maxlen=MESSAGE_HISTORY)
        self._update_count = 0
        self._errors: Dict[str, str] = {}

        self._tasks: List[asyncio.Task] = []
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def on_update(self, callback: UpdateCallback):
        """Register a callback for membership updates."""
        self._update_callbacks.append(callback)

    def on_message(self, callback: MessageCallback):
        """Register a callback for received chat packets."""
        self._message_callbacks.append(callback)

    async def start(self):
        """
        Bind all sockets and start the background tasks.

        Raises:
            TransportError: if any socket cannot be bound; nothing is left running
        """
        if self._running:
            return

        if self.identity is None:
            self.identity = make_identity()

        config = self.config
        logger.info(f"Starting peernet node {self.identity}...")

        try:
            self.transmitter = PeerTransmitter.create(
                config.peer_port,
                broadcast_addr=config.broadcast_addr,
                interval=config.announce_interval,
            )
            self.receiver = PeerReceiver.create(
                config.peer_port,
                host=config.host,
                timeout=config.peer_timeout,
            )
            self._chat_tx = BroadcastTransmitter.create(
                config.bcast_port, config.broadcast_addr, codec=self._chat_codec
            )
            self._chat_rx = BroadcastReceiver.create(
                config.bcast_port, config.host, codec=self._chat_codec
            )
        except Exception:
            self._close_sockets()
            raise

        self._membership = MembershipUpdate()
        self._messages.clear()
        self._update_count = 0
        self._errors = {}
        self.updates = UpdateChannel(config.update_queue_size)
        self._outbox = asyncio.Queue()
        self._inbox = asyncio.Queue()

        self._spawn('announce', self.transmitter.run(self.identity))
        self._spawn('detect', self.receiver.run(self.updates))
        self._spawn('updates', self._dispatch_updates())
        self._spawn('chat-send', self._chat_tx.run(self._outbox))
        self._spawn('chat-receive', self._chat_rx.run(self._inbox))
        self._spawn('messages', self._dispatch_messages())

        self._running = True

        logger.info("peernet node started")
        logger.info(f"  Identity: {self.identity}")
        logger.info(f"  Peer Port: {config.peer_port}")
        logger.info(f"  Broadcast Port: {config.bcast_port}")

    async def stop(self):
        """Cancel all tasks and close all sockets."""
        if not self._running:
            return

        logger.info("Stopping peernet node...")
        self._running = False

        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self.updates:
            self.updates.close()
        self._close_sockets()

        logger.info("peernet node stopped")

    def _spawn(self, name: str, coro):
        task = asyncio.create_task(coro, name=name)
        task.add_done_callback(self._on_task_done)
        self._tasks.append(task)

    def _on_task_done(self, task: asyncio.Task):
        """Log tasks that died on their own; they are not restarted."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._errors[task.get_name()] = f"{type(exc).__name__}: {exc}"
            logger.error(f"Task {task.get_name()} failed: {exc}", exc_info=exc)

    def _close_sockets(self):
        for component in (self.transmitter, self.receiver, self._chat_tx, self._chat_rx):
            if component is not None:
                component.close()

    async def _dispatch_updates(self):
        try:
            async for update in self.updates:
                self._membership = update
                self._update_count += 1
                for callback in self._update_callbacks:
                    try:
                        callback(update)
                    except Exception as e:
                        logger.error(f"Update callback error: {e}")
        except SinkClosedError:
            pass

    async def _dispatch_messages(self):
        while True:
            packet = await self._inbox.get()
            self._messages.append(packet)
            for callback in self._message_callbacks:
                try:
                    callback(packet)
                except Exception as e:
                    logger.error(f"Message callback error: {e}")

    # === Control ===

    def enable_announce(self):
        """Resume heartbeats (next tick)."""
        if self.transmitter:
            self.transmitter.enable()

    def disable_announce(self):
        """Stop heartbeats (next tick); peers will see us as lost."""
        if self.transmitter:
            self.transmitter.disable()

    async def send_message(self, text: str) -> ChatPacket:
        """
        Queue a chat packet for broadcast.

        Raises:
            RuntimeError: if the node is not running
            TransportError: if the packet is too large for one datagram
        """
        if not self._running:
            raise RuntimeError("Node is not running")

        packet = ChatPacket(msg=text, timestamp=int(time.time()), sender=self.identity)
        check_datagram_size(self._chat_codec.encode(packet))
        await self._outbox.put(packet)
        return packet

    # === Queries ===

    def get_peers(self) -> List[str]:
        """Live peers as of the latest membership update."""
        return list(self._membership.peers)

    def get_membership(self) -> MembershipUpdate[str]:
        return self._membership

    def recent_messages(self) -> List[ChatPacket]:
        return list(self._messages)

    def get_stats(self) -> dict:
        """Get node statistics."""
        return {
            'identity': self.identity,
            'running': self._running,
            'announcing': self.transmitter.is_enabled if self.transmitter else False,
            'peer_port': self.config.peer_port,
            'bcast_port': self.config.bcast_port,
            'peers': len(self._membership.peers),
            'updates': self._update_count,
            'messages': len(self._messages),
            'errors': dict(self._errors),
        }
