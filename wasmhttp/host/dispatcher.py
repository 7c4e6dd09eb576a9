"""Command dispatcher for envelopes received from the guest.

Recognized commands:

    http.createServer   acknowledged, the server object is implicit
    http.listen         port -> bind a new HTTP server
    http.writeHead      [id, status, headers] -> send head, keep connection
    http.end            [id, status, headers, body] -> send full response
                        [id, body] -> finish a connection after writeHead

Nothing the guest sends can crash the dispatcher. Unknown commands, malformed
payloads, unknown ids and socket errors are logged and dropped; there is no
error channel back to the guest.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from wasmhttp.core.errors import PayloadError, WasmHttpError
from wasmhttp.host.registry import ResponseRegistry
from wasmhttp.host.types import Envelope

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from typing import Protocol

    class ServerHost(Protocol):
        """Whatever owns the listening servers."""

        async def listen(self, port: int) -> None: ...


# Type alias for handler functions
Handler = Callable[[Any], Coroutine[Any, Any, None]]

DEFAULT_STATUS = 200


class EventDispatcher:
    """Routes guest envelopes to handler methods.

    Stateless across calls apart from the ResponseRegistry it consults.
    """

    def __init__(self, host: ServerHost, registry: ResponseRegistry) -> None:
        self._host = host
        self._registry = registry
        self._handlers: dict[str, Handler] = {
            "http.createServer": self._handle_create_server,
            "http.listen": self._handle_listen,
            "http.writeHead": self._handle_write_head,
            "http.end": self._handle_end,
        }

    @property
    def commands(self) -> list[str]:
        return sorted(self._handlers)

    async def dispatch(self, envelope: Envelope) -> None:
        """Run the handler for one envelope. Never raises."""
        handler = self._handlers.get(envelope.command)
        if handler is None:
            logger.warning("Unknown command from guest: %r", envelope.command)
            return

        try:
            await handler(envelope.payload)
        except PayloadError as e:
            logger.warning("Invalid payload for %s: %s", envelope.command, e.message)
        except WasmHttpError as e:
            logger.error("%s failed: %s", envelope.command, e.message)
        except Exception as e:
            logger.error(
                "Unexpected error dispatching '%s': %s",
                envelope.command,
                e,
                exc_info=True,
            )

    async def _handle_create_server(self, payload: Any) -> None:
        logger.debug("http.createServer acknowledged")

    async def _handle_listen(self, payload: Any) -> None:
        """Handle 'http.listen'. Payload is the port number."""
        port = parse_port(payload)
        try:
            await self._host.listen(port)
        except OSError as e:
            logger.error("Failed to listen on port %d: %s", port, e)

    async def _handle_write_head(self, payload: Any) -> None:
        """Handle the legacy 'http.writeHead' command.

        The connection stays registered so a later 'http.end' can finish it.
        """
        items = _expect_list(payload, "http.writeHead", (3,))
        request_id = parse_id(items[0])
        status = parse_status(items[1])
        headers = parse_headers(items[2])

        response = self._registry.peek(request_id)
        if response is None:
            logger.warning("http.writeHead for unknown request id %d", request_id)
            return
        if response.head_written:
            logger.warning("http.writeHead repeated for request %d, ignoring", request_id)
            return

        try:
            await response.write_head(status, headers)
        except (ConnectionError, OSError) as e:
            logger.warning("Failed to write head for request %d: %s", request_id, e)
            if self._registry.take(request_id) is not None:
                await response.close()

    async def _handle_end(self, payload: Any) -> None:
        """Handle 'http.end'.

        Payload is [id, status, headers, body], or [id, body] when the head
        was already sent through 'http.writeHead'. The payload is validated
        before the connection is taken, so a malformed command leaves it
        registered.
        """
        items = _expect_list(payload, "http.end", (2, 4))
        request_id = parse_id(items[0])
        if len(items) == 4:
            head: tuple[int, dict[str, str]] | None = (
                parse_status(items[1]),
                parse_headers(items[2]),
            )
        else:
            head = None
        body = body_text(items[-1])

        response = self._registry.take(request_id)
        if response is None:
            logger.warning("http.end for unknown request id %d", request_id)
            return

        try:
            if not response.head_written:
                status, headers = head if head is not None else (DEFAULT_STATUS, {})
                await response.write_head(status, headers)
            elif head is not None:
                logger.debug("Head for request %d already written, sending body only", request_id)
            await response.end(body)
        except (ConnectionError, OSError) as e:
            logger.warning("Failed to write response for request %d: %s", request_id, e)
            await response.close()
            return

        logger.debug("Request %d completed", request_id)


# === Payload validation ===


def _expect_list(payload: Any, command: str, arities: tuple[int, ...]) -> list[Any]:
    if not isinstance(payload, list):
        raise PayloadError(f"{command} payload must be an array, got: {type(payload).__name__}")
    if len(payload) not in arities:
        expected = " or ".join(str(n) for n in arities)
        raise PayloadError(f"{command} payload must have {expected} elements, got {len(payload)}")
    return payload


def _as_int(value: Any, what: str) -> int:
    # JSON numbers may arrive as floats; bools are ints in Python but not here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise PayloadError(f"{what} must be a number, got: {type(value).__name__}")
    if isinstance(value, float):
        if not value.is_integer():
            raise PayloadError(f"{what} must be an integer, got: {value}")
        value = int(value)
    return value


def parse_port(value: Any) -> int:
    port = _as_int(value, "port")
    if not 0 <= port <= 65535:
        raise PayloadError(f"port out of range: {port}")
    return port


def parse_id(value: Any) -> int:
    request_id = _as_int(value, "id")
    if request_id < 0:
        raise PayloadError(f"id must be non-negative, got: {request_id}")
    return request_id


def parse_status(value: Any) -> int:
    status = _as_int(value, "status")
    if not 100 <= status <= 999:
        raise PayloadError(f"status out of range: {status}")
    return status


def parse_headers(value: Any) -> dict[str, str]:
    """Validate a header object. Numeric values are converted to text."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"headers must be an object, got: {type(value).__name__}")

    headers: dict[str, str] = {}
    for name, raw in value.items():
        if isinstance(raw, bool) or not isinstance(raw, (str, int, float)):
            raise PayloadError(f"header {name!r} must be a string, got: {type(raw).__name__}")
        text = raw if isinstance(raw, str) else json.dumps(raw)
        if not name or any(c in name for c in "\r\n:") or any(c in text for c in "\r\n"):
            raise PayloadError(f"header {name!r} contains forbidden characters")
        headers[name] = text
    return headers


def body_text(value: Any) -> str:
    """Render a response body. Strings pass through, other JSON is serialized."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
