"""napkin_notes - send photos of physical notes from your phone to your desktop.

This package provides the ephemeral upload server behind the Napkin Notes
capture flow:
- a short-lived HTTP server on an auto-selected port
- one-time token access control, shared through a QR code
- streaming multipart ingest, one event per received photo
"""

from napkin_notes.errors import (
    CapabilityError,
    NoAvailablePortError,
    UploadServerError,
)
from napkin_notes.server import UploadServer
from napkin_notes.types import ConnectionInfo, PortRange, ServerInfo, UploadEvent

__version__ = "0.1.0"


def main():
    """Main entry point for the napkin-notes CLI."""
    from napkin_notes.cli import main as run_cli

    return run_cli()


__all__ = [
    "__version__",
    "main",
    "CapabilityError",
    "ConnectionInfo",
    "NoAvailablePortError",
    "PortRange",
    "ServerInfo",
    "UploadEvent",
    "UploadServer",
    "UploadServerError",
]
