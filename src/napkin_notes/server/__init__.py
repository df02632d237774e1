"""Ephemeral upload server: port negotiation, token auth, multipart ingest, lifecycle."""

from napkin_notes.server.lifecycle import UploadServer
from napkin_notes.server.network import get_local_ip
from napkin_notes.server.ports import find_available_port, is_port_available
from napkin_notes.server.tokens import generate_token

__all__ = [
    "UploadServer",
    "find_available_port",
    "generate_token",
    "get_local_ip",
    "is_port_available",
]
