"""Correlation table between pending HTTP connections and guest commands.

When the server hands a request to the guest it parks the connection here
under a fresh integer id. The guest later names that id in ``http.end`` and
whichever task handles the command takes the connection back out.

Thread-safe: every operation runs inside one short critical section guarded by
a ``threading.Lock``. The lock is never held across an ``await``.

Example:
    registry = ResponseRegistry()
    request_id = registry.allocate()
    registry.register(request_id, response)
    ...
    response = registry.take(request_id)  # None when already taken
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wasmhttp.host.http import PendingResponse

logger = logging.getLogger(__name__)


class ResponseRegistry:
    """Lock-guarded map from request id to PendingResponse.

    Attributes:
        _entries: Map from id to the pending connection.
        _next_id: Next id handed out by allocate().
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[int, PendingResponse] = {}
        self._next_id = 0

    def allocate(self) -> int:
        """Return a fresh id. Ids start at 0 and strictly increase."""
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
        return request_id

    @property
    def allocated(self) -> int:
        """Number of ids handed out so far."""
        with self._lock:
            return self._next_id

    def register(self, request_id: int, response: PendingResponse) -> None:
        """Park a connection under an id obtained from allocate().

        Raises:
            ValueError: If the id is negative, was never allocated, or is
                already registered.
        """
        with self._lock:
            if request_id < 0 or request_id >= self._next_id:
                raise ValueError(f"Id {request_id} was not allocated")
            if request_id in self._entries:
                raise ValueError(f"Id {request_id} is already registered")
            self._entries[request_id] = response

    def take(self, request_id: int) -> PendingResponse | None:
        """Remove and return the connection for an id.

        Returns None if the id is unknown or was already taken.
        """
        with self._lock:
            return self._entries.pop(request_id, None)

    def peek(self, request_id: int) -> PendingResponse | None:
        """Return the connection for an id without removing it."""
        with self._lock:
            return self._entries.get(request_id)

    def drain(self) -> list[PendingResponse]:
        """Remove and return every registered connection."""
        with self._lock:
            responses = list(self._entries.values())
            self._entries.clear()
        return responses

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, request_id: object) -> bool:
        with self._lock:
            return request_id in self._entries
