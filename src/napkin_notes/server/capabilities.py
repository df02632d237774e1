"""
Platform capability checks.

Each OS facility the server depends on sits behind a getter that returns a
module handle, or None when the facility is missing (sandboxed mobile or
WebAssembly runtimes). ``require_capabilities`` composes the mandatory ones
so ``UploadServer.start`` can fail fast before touching any state.
"""

import logging
import os
import secrets
import socket
import sys
from types import ModuleType
from typing import Optional

from napkin_notes.errors import CapabilityError

logger = logging.getLogger(__name__)

SANDBOXED_PLATFORMS = frozenset({"emscripten", "wasi", "ios", "android"})


def is_sandboxed() -> bool:
    return sys.platform in SANDBOXED_PLATFORMS


def get_socket_module() -> Optional[ModuleType]:
    """Return the socket module if raw TCP listening sockets can be created."""
    if is_sandboxed():
        return None
    try:
        probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    except OSError as exc:
        logger.warning("TCP sockets unavailable: %s", exc)
        return None
    probe.close()
    return socket


def get_random_source() -> Optional[ModuleType]:
    """Return the secrets module if the OS exposes a CSPRNG."""
    try:
        os.urandom(1)
    except NotImplementedError:
        logger.warning("No OS randomness source available")
        return None
    return secrets


def get_interface_module() -> Optional[ModuleType]:
    """Return netifaces when interface enumeration is permitted."""
    if is_sandboxed():
        return None
    try:
        import netifaces
    except ImportError:
        logger.info("netifaces not installed, interface enumeration disabled")
        return None
    return netifaces


def require_capabilities() -> None:
    """Raise CapabilityError unless sockets and secure randomness are both available."""
    missing = []
    if get_socket_module() is None:
        missing.append("raw TCP sockets")
    if get_random_source() is None:
        missing.append("a secure random source")
    if missing:
        raise CapabilityError(
            f"Upload server is unsupported on this platform ({sys.platform}): "
            f"missing {' and '.join(missing)}"
        )
