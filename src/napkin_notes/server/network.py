"""Work out which address a phone on the same LAN can reach us on."""
import ipaddress
import logging
import socket
from typing import Iterable, Optional
from urllib.parse import urlencode

from napkin_notes.server.capabilities import get_interface_module

logger = logging.getLogger(__name__)

FALLBACK_HOST = "localhost"


def _is_reachable(address: str) -> bool:
    try:
        ip = ipaddress.IPv4Address(address)
    except ipaddress.AddressValueError:
        return False
    return not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def _interface_addresses() -> Iterable[str]:
    netifaces = get_interface_module()
    if netifaces is None:
        return
    for name in netifaces.interfaces():
        for entry in netifaces.ifaddresses(name).get(netifaces.AF_INET, []):
            address = entry.get("addr")
            if address:
                yield address


def _route_probe_ip() -> Optional[str]:
    # No packet is sent: connecting a UDP socket only selects the outbound interface
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
        finally:
            s.close()
    except OSError:
        return None


def get_local_ip() -> str:
    """
    Return the first LAN-reachable IPv4 address of this machine.

    Interfaces are enumerated first; if none qualifies, the outbound route is
    probed. Falls back to "localhost" and never raises, since a wrong guess
    only means the phone cannot connect.
    """
    try:
        for address in _interface_addresses():
            if _is_reachable(address):
                return address
    except (OSError, ValueError) as exc:
        logger.warning("Interface enumeration failed: %s", exc)

    address = _route_probe_ip()
    if address and _is_reachable(address):
        return address
    return FALLBACK_HOST


def build_share_url(host: str, port: int, token: str) -> str:
    """URL the phone opens; carries the session token as a query parameter."""
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return f"http://{host}:{port}/?{urlencode({'token': token})}"
