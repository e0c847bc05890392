import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

STATUS_OK = "OK"
# Request id the device uses when it cannot tell which request failed
REQUEST_ERROR_ID = -1


class QueryType(Enum):
    PLAYER_LIST = "playerList"
    TRACK_LIST = "trackList"
    CUE_LIST = "cueList"


@dataclass(frozen=True)
class QueryKind:
    """What a request asked for. Cue list queries also carry the track name."""
    type: QueryType
    track: Optional[str] = None

    @classmethod
    def player_list(cls) -> "QueryKind":
        return cls(QueryType.PLAYER_LIST)

    @classmethod
    def track_list(cls) -> "QueryKind":
        return cls(QueryType.TRACK_LIST)

    @classmethod
    def cue_list(cls, track: str) -> "QueryKind":
        return cls(QueryType.CUE_LIST, track)

    @property
    def q(self) -> str:
        """Query string as sent on the wire."""
        if self.type is QueryType.CUE_LIST:
            return f"{self.type.value} {self.track}"
        return self.type.value

    def __str__(self):
        return self.q


@dataclass
class PendingRequest:
    id: int
    query: QueryKind
    issued_at: float


class RequestCorrelator:
    """Matches device responses to the queries that asked for them.

    Responses can come back in any order, so matching is by request id only.
    """

    def __init__(self):
        self._logger = logging.getLogger(__name__)
        self._next_request_id: int = 0
        self._pending: dict[int, PendingRequest] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def issue(self, query: QueryKind) -> dict[str, Any]:
        """Allocate a request id for ``query`` and return the payload to send."""
        request_id = self._next_request_id
        self._next_request_id += 1
        self._pending[request_id] = PendingRequest(request_id, query, time.time())
        self._logger.debug(f"Issued request #{request_id} ({query})")
        return {"request": request_id, "query": {"q": query.q}}

    def is_pending(self, query: QueryKind) -> bool:
        return any(pending.query == query for pending in self._pending.values())

    def resolve(self, message: dict[str, Any]) -> Optional[tuple[QueryKind, Optional[list]]]:
        """Return ``(query, results)`` for a response, or None when it matches nothing.

        ``results`` is None when the response carried no results list.
        Unmatched responses never touch other pending requests.
        """
        request_id = message.get("request")
        status = message.get("status")

        if request_id is None:
            self._logger.debug(f"Unsolicited message from device: {message}")
            return None
        if request_id == REQUEST_ERROR_ID:
            self._logger.warning(f"Device reported request error: {status}")
            return None
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            self._logger.warning(f"Ignoring response with invalid request id: {request_id!r}")
            return None

        pending = self._pending.pop(request_id, None)
        if pending is None:
            self._logger.warning(f"Response for unknown or already resolved request #{request_id}")
            return None

        if status != STATUS_OK:
            self._logger.warning(f"Request #{request_id} ({pending.query}) failed: {status}")
            return None

        results = message.get("results")
        elapsed = time.time() - pending.issued_at
        self._logger.debug(f"Response for request #{request_id} ({pending.query}) after {elapsed:.3f}s")
        return pending.query, results

    def expire(self, max_age: float) -> int:
        """Forget requests older than ``max_age`` seconds. Returns how many were dropped."""
        cutoff = time.time() - max_age
        stale = [request_id for request_id, pending in self._pending.items() if pending.issued_at < cutoff]
        for request_id in stale:
            pending = self._pending.pop(request_id)
            self._logger.warning(f"Request #{request_id} ({pending.query}) got no response, dropping")
        return len(stale)

    def clear(self):
        if self._pending:
            self._logger.debug(f"Discarding {len(self._pending)} pending requests")
        self._pending.clear()
