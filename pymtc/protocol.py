import asyncio
import json
import logging
from typing import Any, Optional

from pymtc.framing import LineFramer


def decode_line(line: str, logger: Optional[logging.Logger] = None) -> Optional[dict[str, Any]]:
    """Decode one line as a JSON object. Returns None for empty or malformed lines."""
    logger = logger or logging.getLogger(__name__)
    if not line.strip():
        return None
    try:
        message = json.loads(line)
    except json.JSONDecodeError as e:
        logger.warning(f"Error parsing device response {line!r}: {e}")
        return None
    if not isinstance(message, dict):
        logger.warning(f"Ignoring device response that is not a JSON object: {line!r}")
        return None
    return message


class MultiTransportProtocol(asyncio.Protocol):
    """asyncio protocol for one connection attempt.

    Every callback is forwarded to the ConnectionManager together with the
    generation this protocol was created for, so the manager can ignore
    events from sockets it has already replaced. Once detached, the protocol
    drops all events and closes any transport it is handed.
    """

    def __init__(self, manager, generation: int):
        self._logger = logging.getLogger(__name__)
        self._manager = manager
        self.generation = generation
        self.peer_name = None
        self._framer = LineFramer()

    @property
    def attached(self) -> bool:
        return self._manager is not None

    def detach(self):
        self._manager = None
        self._framer.reset()

    def connection_made(self, transport):
        """Method from asyncio.Protocol"""
        self.peer_name = transport.get_extra_info("peername")
        self._framer.reset()
        if self._manager is None:
            self._logger.debug(f"Connection to {self.peer_name} made after it was abandoned, closing")
            transport.abort()
            return
        self._manager._connection_made(self.generation, transport)

    def data_received(self, data):
        """Method from asyncio.Protocol"""
        self._logger.debug(f"data_received client: {data}")
        for line in self._framer.feed(data):
            if self._manager is None:
                return
            message = decode_line(line, self._logger)
            if message is None:
                continue
            self._logger.debug(f"Whole message: {message}")
            self._manager._message_received(self.generation, message)

    def connection_lost(self, exc):
        """Method from asyncio.Protocol"""
        if self._manager is None:
            return
        self._manager._connection_lost(self.generation, exc)
