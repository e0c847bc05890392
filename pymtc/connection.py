import asyncio
import logging
from asyncio import Task, TimerHandle
from enum import Enum
from typing import Any, Optional

from pymtc.exceptions import ConfigError, NotConnectedError
from pymtc.listener import MultiTransportListener
from pymtc.protocol import MultiTransportProtocol

DEFAULT_PORT = 54321


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    # Host or port missing/invalid; nothing happens until reconfigured
    BAD_CONFIG = "bad_config"


def validate_config(host, port) -> tuple[str, int]:
    """Return the normalized ``(host, port)`` or raise ConfigError."""
    if host is None or not str(host).strip():
        raise ConfigError("Host not configured")
    if isinstance(port, bool):
        raise ConfigError(f"Invalid port: {port!r}")
    try:
        port = int(port)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid port: {port!r}") from None
    if not 1 <= port <= 65535:
        raise ConfigError(f"Port must be 1-65535, got {port}")
    host = str(host).strip()
    try:
        host.encode("idna")
    except UnicodeError:
        raise ConfigError(f"Invalid host name: {host!r}") from None
    return host, port


class ConnectionManager:
    """Owns the single TCP connection to the device and its state machine.

    DISCONNECTED -> CONNECTING -> CONNECTED, and CONNECTING/CONNECTED ->
    FAILED on timeout, error or remote close. From FAILED exactly one retry is
    scheduled after ``reconnect_time`` seconds, unless teardown() was called.

    Every connect attempt gets a new generation number. Transport callbacks
    carry the generation they belong to and are dropped when it is no longer
    current, so a late close from an old socket cannot disturb a newer one.

    Events are reported to ``callback``: status_changed on every state change,
    connected/disconnected around the CONNECTED state and message_received
    for each decoded message.
    """

    def __init__(
        self,
        callback: MultiTransportListener,
        connect_timeout: float = 5.0,
        retry_connect_timeout: float = 10.0,
        reconnect_time: float = 10.0,
    ):
        self._logger = logging.getLogger(__name__)
        self._callback = callback
        self._connect_timeout = connect_timeout
        self._retry_connect_timeout = retry_connect_timeout
        self._reconnect_time = reconnect_time

        self._host: Optional[str] = None
        self._port: Optional[int] = None
        self._state = ConnectionState.DISCONNECTED
        self._status_message: str = ""
        self._generation: int = 0
        # Attempts since the last configure(); the first one uses the short timeout
        self._attempts: int = 0
        self._closed = False

        self._transport: Optional[asyncio.Transport] = None
        self._protocol: Optional[MultiTransportProtocol] = None
        self._connect_task: Optional[Task[Any]] = None
        self._reconnect_handle: Optional[TimerHandle] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def status_message(self) -> str:
        return self._status_message

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def host(self) -> Optional[str]:
        return self._host

    @property
    def port(self) -> Optional[int]:
        return self._port

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    # ========== Public API ==========

    def configure(self, host, port) -> ConnectionState:
        """Apply a new host/port, dropping any current connection."""
        was_connected = self._drop_connection()
        self._generation += 1
        self._closed = False
        self._attempts = 0
        try:
            self._host, self._port = validate_config(host, port)
        except ConfigError as e:
            self._host, self._port = None, None
            self._logger.warning(f"{e}, not connecting")
            self._set_state(ConnectionState.BAD_CONFIG, str(e))
        else:
            self._logger.info(f"Configured for {self._host}:{self._port}")
            self._set_state(ConnectionState.DISCONNECTED, "Waiting for connection")
        if was_connected:
            self._callback.disconnected()
        return self._state

    async def async_connect(self) -> ConnectionState:
        """Connect, or wait for the attempt already in flight.

        Returns the state the attempt ended in.
        """
        if self._closed:
            self._logger.warning("Connection was torn down, not connecting")
            return self._state
        if self._host is None:
            if self._state is not ConnectionState.BAD_CONFIG:
                self._set_state(ConnectionState.BAD_CONFIG, "Host or Port not configured")
            return self._state
        if self._state is ConnectionState.CONNECTED:
            return self._state

        task = self._start_attempt()
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            # The attempt was abandoned by teardown() or configure(); we were not
            if not task.cancelled():
                raise
            return self._state

    def send(self, data: bytes):
        """Write to the device. Raises NotConnectedError unless connected."""
        if self._state is not ConnectionState.CONNECTED or self._transport is None:
            raise NotConnectedError(
                f"Not connected to {self._host}:{self._port} (state={self._state.value})"
            )
        if self._transport.is_closing():
            # The close callback has not arrived yet, treat the connection as broken now
            self._connection_failed(self._generation, "Transport is closing")
            raise NotConnectedError(f"Connection to {self._host}:{self._port} is closing")
        self._logger.debug(f"SEND: {data!r}")
        self._transport.write(data)

    def teardown(self):
        """Close the connection for good. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        was_connected = self._drop_connection()
        self._generation += 1
        self._set_state(ConnectionState.DISCONNECTED, "Connection closed")
        self._logger.info(f"Disconnected from {self._host}, not reconnecting")
        if was_connected:
            self._callback.disconnected()

    # ========== Connection attempts ==========

    def _start_attempt(self) -> Task[Any]:
        if self._connect_task is None or self._connect_task.done():
            self._cancel_reconnect()
            self._connect_task = asyncio.get_running_loop().create_task(self._attempt_connect())
        return self._connect_task

    async def _attempt_connect(self) -> ConnectionState:
        self._generation += 1
        generation = self._generation
        host, port = self._host, self._port
        timeout = self._connect_timeout if self._attempts == 0 else self._retry_connect_timeout
        self._attempts += 1

        self._release_transport()
        protocol = MultiTransportProtocol(self, generation)
        self._protocol = protocol
        self._set_state(ConnectionState.CONNECTING, f"Connecting to {host}:{port}")
        self._logger.info(f"Attempting to connect to {host}:{port} (attempt {self._attempts}, timeout {timeout}s)")

        loop = asyncio.get_running_loop()
        try:
            await asyncio.wait_for(
                loop.create_connection(lambda: protocol, host=host, port=port),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            self._connection_failed(generation, f"Connection timeout to {host}:{port}")
        except (OSError, ValueError) as e:
            # ValueError covers resolver and IDNA failures for odd host names
            self._connection_failed(generation, f"Connection to {host}:{port} failed: {e}")
        return self._state

    def _schedule_reconnect(self):
        if self._closed:
            return
        self._cancel_reconnect()
        self._reconnect_handle = asyncio.get_running_loop().call_later(self._reconnect_time, self._reconnect)

    def _reconnect(self):
        self._reconnect_handle = None
        if self._closed:
            return
        self._logger.info(f"Reconnecting to {self._host}:{self._port}")
        self._start_attempt()

    def _cancel_reconnect(self):
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    # ========== Protocol callbacks ==========

    def _is_stale(self, generation: int) -> bool:
        return self._closed or generation != self._generation

    def _connection_made(self, generation: int, transport):
        if self._is_stale(generation):
            self._logger.debug(f"Ignoring connection from superseded attempt #{generation}")
            transport.abort()
            return
        self._transport = transport
        self._cancel_reconnect()
        self._logger.info(f"Connection Made: {transport.get_extra_info('peername')}")
        self._set_state(ConnectionState.CONNECTED, f"Connected to {self._host}:{self._port}")
        self._callback.connected()

    def _message_received(self, generation: int, message: dict):
        if self._is_stale(generation):
            self._logger.debug(f"Ignoring message from superseded connection #{generation}")
            return
        self._callback.message_received(message)

    def _connection_lost(self, generation: int, exc: Optional[Exception]):
        if self._is_stale(generation):
            self._logger.debug(f"Ignoring close of superseded connection #{generation}")
            return
        reason = f"Connection closed with error: {exc}" if exc else "Connection closed by server"
        self._connection_failed(generation, reason)

    def _connection_failed(self, generation: int, reason: str):
        if self._is_stale(generation):
            return
        if self._state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        was_connected = self._state is ConnectionState.CONNECTED
        self._release_transport()
        self._logger.error(f"{reason}, will try to reconnect in {self._reconnect_time} seconds")
        self._set_state(ConnectionState.FAILED, reason)
        if was_connected:
            self._callback.disconnected()
        self._schedule_reconnect()

    # ========== Helpers ==========

    def _set_state(self, state: ConnectionState, message: str):
        if state is self._state and message == self._status_message:
            return
        self._state = state
        self._status_message = message
        self._logger.debug(f"State changed to {state.value}: {message}")
        self._callback.status_changed(state, message)

    def _release_transport(self):
        if self._protocol is not None:
            self._protocol.detach()
            self._protocol = None
        if self._transport is not None:
            self._transport.abort()
            self._transport = None

    def _drop_connection(self) -> bool:
        """Cancel timers and the connect attempt and close the transport.

        Returns whether the connection was up.
        """
        was_connected = self._state is ConnectionState.CONNECTED
        self._cancel_reconnect()
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()
        self._connect_task = None
        self._release_transport()
        return was_connected
