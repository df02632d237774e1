"""Port negotiation: find and bind a free TCP port inside a configured range."""
import logging
import os
import socket
from typing import Callable, Optional

from napkin_notes.types import PortRange

logger = logging.getLogger(__name__)

ALL_INTERFACES = "0.0.0.0"
DEFAULT_BACKLOG = 128


def _family_for(host: str) -> socket.AddressFamily:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


def bind_listening_socket(host: str, port: int, backlog: int = DEFAULT_BACKLOG) -> socket.socket:
    """
    Bind and listen on (host, port).

    The socket is returned non-blocking, ready to hand to an asyncio server.
    On failure the socket is closed before the OSError propagates.
    """
    sock = socket.socket(_family_for(host), socket.SOCK_STREAM)
    try:
        # Windows SO_REUSEADDR lets a second socket steal a bound port
        if os.name != "nt":
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(backlog)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


def is_port_available(port: int, host: str = ALL_INTERFACES) -> bool:
    """Probe a port with a throwaway listener that is closed straight away."""
    try:
        probe = bind_listening_socket(host, port, backlog=1)
    except OSError as exc:
        logger.debug("Port %d unavailable on %s: %s", port, host, exc)
        return False
    probe.close()
    return True


def find_available_port(
    port_range: PortRange,
    host: str = ALL_INTERFACES,
    probe: Callable[[int, str], bool] = is_port_available,
) -> Optional[int]:
    """
    Return the lowest port in ``port_range`` that can be bound, or None.

    Ports are probed strictly in ascending order and the scan stops at the
    first success.
    """
    port_range = PortRange.coerce(port_range)
    for port in port_range.ports():
        if probe(port, host):
            return port
    return None
