"""
Upload server lifecycle: Idle -> Starting -> Listening -> Stopping -> Idle.

uvicorn runs embedded in the caller's asyncio loop on a socket we bind
ourselves, so the port is known before serving starts and is guaranteed to be
released once ``stop()`` returns.
"""
import asyncio
import contextlib
import logging
import socket
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple, Union

import uvicorn

from napkin_notes.config import DEFAULT_FALLBACK_FILENAME
from napkin_notes.errors import NoAvailablePortError, ServerStartError, ServerStateError
from napkin_notes.server.app import ConnectCallback, UploadCallback, create_app
from napkin_notes.server.capabilities import require_capabilities
from napkin_notes.server.network import build_share_url, get_local_ip
from napkin_notes.server.ports import ALL_INTERFACES, bind_listening_socket, find_available_port
from napkin_notes.server.tokens import generate_token, redact_token
from napkin_notes.types import PortRange, ServerInfo, ServerState, Session

logger = logging.getLogger(__name__)

STARTUP_TIMEOUT = 5.0
DRAIN_POLL_INTERVAL = 0.05
WILDCARD_HOSTS = frozenset({"", "0.0.0.0", "::"})


class _EmbeddedServer(uvicorn.Server):
    """uvicorn server that leaves the host process's signal handlers alone."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield


@dataclass
class ServerHandle:
    """Everything one listening session owns. Never reused across sessions."""

    session: Session
    listener: socket.socket
    server: uvicorn.Server
    task: asyncio.Task
    closed: asyncio.Event = field(default_factory=asyncio.Event)
    last_activity: float = field(default_factory=time.monotonic)
    watchdog: Optional[asyncio.Task] = None

    @property
    def connections(self) -> set:
        # uvicorn protocols add themselves on connection_made and drop out on connection_lost
        return self.server.server_state.connections

    def abort_connections(self) -> int:
        aborted = 0
        for connection in list(self.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None:
                transport.abort()
                aborted += 1
        return aborted


class UploadServer:
    """
    Single-tenant photo upload server for one capture session at a time.

    Args:
        on_upload: called with an UploadEvent for every received file; may be async
        on_connect: called with a ConnectionInfo when the upload page is loaded
        host: interface to listen on (all interfaces by default)
        fallback_filename: name used for file parts sent without one
        max_file_size: per-file limit in bytes, None for unlimited
        shutdown_grace: seconds stop() waits for in-flight requests before force-closing
        idle_timeout: seconds without authorized requests before the server stops itself
    """

    def __init__(
        self,
        on_upload: UploadCallback,
        on_connect: Optional[ConnectCallback] = None,
        *,
        host: str = ALL_INTERFACES,
        fallback_filename: str = DEFAULT_FALLBACK_FILENAME,
        max_file_size: Optional[int] = None,
        shutdown_grace: float = 0.0,
        idle_timeout: Optional[float] = None,
    ):
        self.on_upload = on_upload
        self.on_connect = on_connect
        self.host = host
        self.fallback_filename = fallback_filename
        self.max_file_size = max_file_size
        self.shutdown_grace = shutdown_grace
        self.idle_timeout = idle_timeout

        self._state = ServerState.IDLE
        self._handle: Optional[ServerHandle] = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def session(self) -> Optional[Session]:
        return self._handle.session if self._handle else None

    @property
    def port(self) -> Optional[int]:
        return self._handle.session.port if self._handle else None

    @property
    def connection_count(self) -> int:
        return len(self._handle.connections) if self._handle else 0

    def is_running(self) -> bool:
        return self._state is ServerState.LISTENING

    async def start(self, port_range: Union[PortRange, Sequence[int]]) -> ServerInfo:
        """
        Bind the first free port in ``port_range`` and start serving.

        Raises:
            CapabilityError: the platform cannot open listening sockets
            NoAvailablePortError: every port in the range is taken
            ServerStateError: a session is already active
        """
        if self._state is not ServerState.IDLE:
            raise ServerStateError(f"Cannot start: server is {self._state.value}")
        require_capabilities()
        port_range = PortRange.coerce(port_range)

        self._state = ServerState.STARTING
        logger.info("Starting server, port range: %s", port_range)

        listener = None
        server = None
        task = None
        try:
            token = generate_token()
            listener, port = self._bind(port_range)
            session = Session(port=port, token=token)

            app = create_app(
                token,
                self.on_upload,
                self.on_connect,
                fallback_filename=self.fallback_filename,
                max_file_size=self.max_file_size,
                on_activity=self._touch,
            )
            config = uvicorn.Config(
                app,
                host=self.host,
                port=port,
                lifespan="off",
                ws="none",
                log_config=None,
                access_log=False,
            )
            server = _EmbeddedServer(config)
            task = asyncio.get_running_loop().create_task(server.serve(sockets=[listener]))
            await self._wait_until_started(server, task)
        except BaseException:
            if server is not None:
                server.should_exit = True
                server.force_exit = True
            if task is not None:
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
            if listener is not None:
                listener.close()
            self._state = ServerState.IDLE
            raise

        handle = ServerHandle(session=session, listener=listener, server=server, task=task)
        if self.idle_timeout:
            handle.watchdog = asyncio.get_running_loop().create_task(
                self._watch_idle(handle, self.idle_timeout)
            )
        self._handle = handle
        self._state = ServerState.LISTENING

        share_host = get_local_ip() if self.host in WILDCARD_HOSTS else self.host
        url = build_share_url(share_host, port, token)
        logger.info(
            "Server started successfully on http://%s:%d (token %s)",
            share_host,
            port,
            redact_token(token),
        )
        return ServerInfo(port=port, token=token, url=url)

    async def stop(self, grace: Optional[float] = None) -> None:
        """
        Tear the session down and release the port. Safe to call at any time.

        Open connections are aborted rather than drained; pass ``grace`` (or set
        ``shutdown_grace``) to first give in-flight requests that long to finish.
        """
        handle = self._handle
        if handle is None:
            logger.debug("No server to stop")
            return
        if self._state is ServerState.STOPPING:
            await handle.closed.wait()
            return

        self._state = ServerState.STOPPING
        grace = self.shutdown_grace if grace is None else grace
        logger.info("Stopping server on port %d", handle.session.port)
        try:
            if handle.watchdog is not None and handle.watchdog is not asyncio.current_task():
                handle.watchdog.cancel()
            if grace > 0:
                await self._drain(handle, grace)

            aborted = handle.abort_connections()
            if aborted:
                logger.info("Force-closed %d open connection(s)", aborted)
            handle.server.should_exit = True
            handle.server.force_exit = True

            (result,) = await asyncio.gather(handle.task, return_exceptions=True)
            if isinstance(result, Exception):
                logger.error("Server task ended with an error: %r", result)
            handle.listener.close()
        finally:
            self._handle = None
            self._state = ServerState.IDLE
            handle.closed.set()
        logger.info("Server stopped successfully")

    async def wait_closed(self) -> None:
        """Block until the current session has been stopped (by stop() or the idle timeout)."""
        handle = self._handle
        if handle is not None:
            await handle.closed.wait()

    def _bind(self, port_range: PortRange) -> Tuple[socket.socket, int]:
        # Another process may grab a probed port before we bind it for real,
        # so keep scanning past any port that loses that race.
        candidate = port_range.start
        while candidate <= port_range.end:
            port = find_available_port(PortRange(candidate, port_range.end), host=self.host)
            if port is None:
                break
            try:
                return bind_listening_socket(self.host, port), port
            except OSError as exc:
                logger.debug("Port %d taken between probe and bind: %s", port, exc)
                candidate = port + 1
        raise NoAvailablePortError(f"No available ports in range {port_range}")

    async def _wait_until_started(self, server: uvicorn.Server, task: asyncio.Task) -> None:
        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not server.started:
            if task.done():
                cause = None if task.cancelled() else task.exception()
                raise ServerStartError("Server exited during startup") from cause
            if time.monotonic() > deadline:
                raise ServerStartError(f"Server did not start within {STARTUP_TIMEOUT} seconds")
            await asyncio.sleep(0.01)

    async def _drain(self, handle: ServerHandle, grace: float) -> None:
        deadline = time.monotonic() + grace
        while handle.connections and time.monotonic() < deadline:
            await asyncio.sleep(DRAIN_POLL_INTERVAL)

    def _touch(self) -> None:
        if self._handle is not None:
            self._handle.last_activity = time.monotonic()

    async def _watch_idle(self, handle: ServerHandle, timeout: float) -> None:
        while True:
            remaining = handle.last_activity + timeout - time.monotonic()
            if remaining <= 0:
                break
            await asyncio.sleep(remaining)
        logger.info("No requests for %.0f seconds, stopping", timeout)
        await self.stop()
