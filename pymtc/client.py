"""MultiTransport client - connection, catalog polling and command sending.

This module contains the high-level client that ties the engine together:
- ConnectionManager for the TCP session and reconnection
- RequestCorrelator for matching query responses to their requests
- DeviceCatalogCache for the players, tracks and sections last reported
- PollScheduler for keeping the catalog fresh while connected
- CommandEncoder for validating and building track commands

Connection and message events reach the client through ClientListener, which
is registered on the same MultiplexingListener as any external listener."""

import logging
from typing import Optional

from pymtc.catalog import DeviceCatalogCache
from pymtc.commands import COMMAND_PLAY, COMMAND_PLAY_SECTION, CommandEncoder, encode_message
from pymtc.connection import DEFAULT_PORT, ConnectionManager, ConnectionState
from pymtc.correlator import QueryKind, QueryType, RequestCorrelator
from pymtc.exceptions import NotConnectedError
from pymtc.listener import MultiplexingListener, MultiTransportListener
from pymtc.poller import PollScheduler

DEFAULT_POLL_INTERVAL_MS = 5000

# Field of each result record holding the name, per query type
RESULT_FIELDS = {
    QueryType.PLAYER_LIST: "player",
    QueryType.TRACK_LIST: "track",
    # Sections come back in the "location" field
    QueryType.CUE_LIST: "location",
}


def names_from_results(results: list, field: str) -> list[str]:
    """Pull the non-blank ``field`` values out of a results list, keeping order."""
    return [
        item[field]
        for item in results
        if isinstance(item, dict) and isinstance(item.get(field), str) and item[field].strip()
    ]


class ClientListener(MultiTransportListener):
    """Listener that forwards connection events and messages to the client."""

    def __init__(self, client):
        self._client = client

    def connected(self):
        self._client._on_connected()

    def disconnected(self):
        self._client._on_disconnected()

    def message_received(self, message: dict):
        self._client._on_message(message)


class MultiTransportClient:
    """High-level control of one MultiTransport device.

    This class:
    - Creates and manages the ConnectionManager
    - Polls players and tracks while connected, and sections when tracks change
    - Keeps the device catalog and reports changes to listeners
    - Validates and sends transport and go-to-cue commands
    """

    def __init__(self, hostname, port=DEFAULT_PORT, poll_interval_ms=DEFAULT_POLL_INTERVAL_MS,
                 connect_timeout=5.0, retry_connect_timeout=10.0, reconnect_time=10.0,
                 pending_request_timeout=30.0):
        """Initialize client.

        Args:
            hostname: Device hostname or IP
            port: MultiTransport event port (default 54321)
            poll_interval_ms: Milliseconds between catalog polls, 0 disables polling
            connect_timeout: Seconds allowed for the first connect after configuration
            retry_connect_timeout: Seconds allowed for each reconnect attempt
            reconnect_time: Seconds to wait after a failure before reconnecting
            pending_request_timeout: Seconds after which an unanswered query is dropped
        """
        self._logger = logging.getLogger(__name__)
        self._poll_interval_ms: int = self._checked_poll_interval(poll_interval_ms)
        self._pending_request_timeout: float = pending_request_timeout

        # Create multiplexing listener for external listeners
        self._multiplex_callback = MultiplexingListener()

        # Register internal listener to update catalog and handle connection lifecycle
        self._client_listener = ClientListener(self)
        self._multiplex_callback.register_listener(self._client_listener)

        self._correlator = RequestCorrelator()
        self._catalog = DeviceCatalogCache()
        self._encoder = CommandEncoder()
        self._poller = PollScheduler(self.refresh)
        self._connection = ConnectionManager(
            self._multiplex_callback,
            connect_timeout=connect_timeout,
            retry_connect_timeout=retry_connect_timeout,
            reconnect_time=reconnect_time,
        )
        self._connection.configure(hostname, port)

    def _checked_poll_interval(self, poll_interval_ms) -> int:
        interval = int(poll_interval_ms)
        if interval < 0:
            self._logger.warning(f"Poll interval must be >= 0 ms, got {interval}, polling disabled")
            return 0
        return interval

    # ========== Connection lifecycle handlers ==========

    def _on_connected(self):
        """Called by ClientListener when connection is established."""
        self._logger.info("Client connected, requesting device data")
        self._correlator.clear()
        if self._poll_interval_ms > 0:
            self._poller.start(self._poll_interval_ms)
        else:
            # No polling, but fetch the catalog once per connection
            self.refresh()

    def _on_disconnected(self):
        """Called by ClientListener when connection is lost."""
        self._poller.stop()
        self._correlator.clear()

    def _on_message(self, message: dict):
        resolved = self._correlator.resolve(message)
        if resolved is None:
            return
        query, results = resolved
        if not isinstance(results, list):
            self._logger.debug(f"Response to {query} has no results, ignoring")
            return

        names = names_from_results(results, RESULT_FIELDS[query.type])
        if query.type is QueryType.PLAYER_LIST:
            changed = self._catalog.apply_player_list(names)
        elif query.type is QueryType.TRACK_LIST:
            changed = self._catalog.apply_track_list(names)
            if changed:
                self.refresh_sections()
        else:
            changed = self._catalog.apply_section_list(query.track, names)

        if changed:
            self._multiplex_callback.catalog_changed(query)

    # ========== Public API ==========

    @property
    def state(self) -> ConnectionState:
        return self._connection.state

    @property
    def connected(self) -> bool:
        return self._connection.connected

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_interval_ms

    @property
    def players(self) -> list[str]:
        return self._catalog.players

    @property
    def tracks(self) -> list[str]:
        return self._catalog.tracks

    def get_sections(self, track: str) -> list[str]:
        return self._catalog.get_sections(track)

    def section_labels(self) -> list[str]:
        return self._catalog.section_labels()

    def register_listener(self, listener):
        """Register external listener for client events."""
        self._multiplex_callback.register_listener(listener)

    def unregister_listener(self, listener):
        """Unregister external listener."""
        self._multiplex_callback.unregister_listener(listener)

    async def async_connect(self) -> ConnectionState:
        """Connect to the device."""
        return await self._connection.async_connect()

    async def async_reconfigure(self, hostname, port=DEFAULT_PORT, poll_interval_ms=None) -> ConnectionState:
        """Apply new settings and reconnect. The catalog is kept."""
        self._logger.info("Config updated - reconnecting...")
        self._poller.stop()
        self._correlator.clear()
        if poll_interval_ms is not None:
            self._poll_interval_ms = self._checked_poll_interval(poll_interval_ms)
        if self._connection.configure(hostname, port) is ConnectionState.BAD_CONFIG:
            return ConnectionState.BAD_CONFIG
        return await self._connection.async_connect()

    def close(self):
        """Close the connection and stop reconnection attempts."""
        self._poller.stop()
        self._connection.teardown()
        self._correlator.clear()

    def refresh(self):
        """Ask the device for its players and tracks."""
        if not self._connection.connected:
            self._logger.debug("Not connected, skipping device data refresh")
            return
        self._correlator.expire(self._pending_request_timeout)
        self._logger.debug("Requesting device data")
        for query in (QueryKind.player_list(), QueryKind.track_list()):
            # One outstanding request per kind is enough
            if self._correlator.is_pending(query):
                self._logger.debug(f"{query} request still pending, not repeating it")
                continue
            self._send_query(query)

    def refresh_sections(self):
        """Ask the device for the sections of every known track."""
        tracks = self._catalog.tracks
        if tracks:
            self._logger.debug(f"Requesting section lists for {len(tracks)} tracks")
        for track in tracks:
            self._send_query(QueryKind.cue_list(track))

    def go_to_cue(self, player, track, location, command=COMMAND_PLAY_SECTION,
                  transition_seconds=None, transition_track=None, transition_section=None,
                  transition_label=None) -> bool:
        """Jump a transport to a cue or timecode on a track.

        ``transition_label`` accepts an entry of section_labels() in place of
        ``transition_track`` and ``transition_section``.

        Returns True if the command was written to the device.
        """
        result = self._encoder.encode_go_to_cue(
            player, track, location, command,
            transition_seconds=transition_seconds,
            transition_track=transition_track,
            transition_section=transition_section,
            transition_label=transition_label,
        )
        if not result.ok:
            self._multiplex_callback.error(f"Command not sent: {result.error}")
            return False
        return self._send(result.command.encode())

    def transport_command(self, player, command=COMMAND_PLAY) -> bool:
        """Send a plain transport command (play, stop, ...) to a player."""
        result = self._encoder.encode_transport_command(player, command)
        if not result.ok:
            self._multiplex_callback.error(f"Command not sent: {result.error}")
            return False
        return self._send(result.command.encode())

    # ========== Sending ==========

    def _send_query(self, query: QueryKind) -> Optional[int]:
        if not self._connection.connected:
            return None
        payload = self._correlator.issue(query)
        if not self._send(encode_message(payload)):
            return None
        return payload["request"]

    def _send(self, data: bytes) -> bool:
        try:
            self._connection.send(data)
        except NotConnectedError as e:
            self._logger.error(f"SEND FAILED: {e}")
            self._multiplex_callback.error(str(e))
            return False
        return True
