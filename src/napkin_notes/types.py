"""Value types shared by the upload server and its callers."""
from __future__ import annotations

import enum
import time
from dataclasses import dataclass, field
from typing import Sequence, Union

from napkin_notes.errors import InvalidPortRangeError

MAX_PORT = 65535


@dataclass(frozen=True)
class PortRange:
    """Inclusive ``[start, end]`` range of TCP ports to search."""

    start: int
    end: int

    def __post_init__(self) -> None:
        for value in (self.start, self.end):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidPortRangeError(f"Port must be an integer, got {value!r}")
            if not 1 <= value <= MAX_PORT:
                raise InvalidPortRangeError(f"Port {value} is outside 1-{MAX_PORT}")
        if self.start > self.end:
            raise InvalidPortRangeError(
                f"Port range start {self.start} is greater than end {self.end}"
            )

    @classmethod
    def coerce(cls, value: Union["PortRange", Sequence[int]]) -> "PortRange":
        if isinstance(value, cls):
            return value
        try:
            start, end = value
        except (TypeError, ValueError):
            raise InvalidPortRangeError(
                f"Expected a (start, end) pair, got {value!r}"
            ) from None
        return cls(start, end)

    def ports(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


@dataclass(frozen=True)
class Session:
    port: int
    token: str
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class UploadEvent:
    """One fully received file part."""

    filename: str
    payload: bytes

    @property
    def buffer(self) -> bytes:
        return self.payload

    @property
    def size(self) -> int:
        return len(self.payload)


@dataclass(frozen=True)
class ConnectionInfo:
    """Who loaded the upload page. Observability only, never persisted."""

    remote_address: str
    user_agent: str
    request_url: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class ServerInfo:
    """What the caller needs to show the user: where to point the phone."""

    port: int
    token: str
    url: str


class ServerState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    LISTENING = "listening"
    STOPPING = "stopping"
