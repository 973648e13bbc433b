"""
Local address discovery.

The address is only used to build a human-meaningful peer identity, so a
single lookup per process is enough.
"""

import functools
import logging
import random
import socket
from typing import Optional

from ..errors import TransportError

logger = logging.getLogger(__name__)

# Any routable address works; connecting a UDP socket sends no packets
PROBE_ADDR = ("8.8.8.8", 53)


@functools.lru_cache(maxsize=None)
def get_localip() -> str:
    """
    Get the IPv4 address of the interface that would reach the internet.

    Successful lookups are cached for the life of the process; failures
    are not.

    Raises:
        TransportError: if no interface can reach the outbound test address
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(PROBE_ADDR)
        ip = s.getsockname()[0]
    except OSError as e:
        raise TransportError(f"Cannot determine local IP: {e}") from e
    finally:
        s.close()

    logger.debug(f"Local IP is {ip}")
    return ip


def make_identity(unique: Optional[int] = None) -> str:
    """Build a peer identity of the form "<local ip>:<nonce>"."""
    if unique is None:
        unique = random.randint(0, 0xFFFF)
    return f"{get_localip()}:{unique}"
