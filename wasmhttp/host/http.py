"""Minimal asyncio HTTP/1.1 server driven by the guest.

The server only reads the request line. For every request with a standard
method it parks the connection in the ResponseRegistry under a fresh id and
tells the guest:

    ["http.request", [{"method": "GET", "url": "/hello"}, {"id": 0}]]

The connection task ends there. The response is written later, from whatever
task handles the guest's ``http.end`` command for that id.

Responses always use chunked transfer encoding with a single data chunk:

    HTTP/1.1 200 OK\\r\\n
    Date: ...\\r\\n
    Connection: keep-alive\\r\\n
    Keep-Alive: timeout=5\\r\\n
    Transfer-Encoding: chunked\\r\\n
    Content-Type: text/plain\\r\\n
    \\r\\n
    2\\r\\nhi\\r\\n0\\r\\n\\r\\n

Limitations:
    - Headers and bodies of requests are never consumed.
    - Connections are closed after one response; keep-alive is advertised
      but not honoured.
    - There is no limit on the number of pending requests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from email.utils import formatdate
from http import HTTPStatus

from wasmhttp.config.schema import ServerConfig
from wasmhttp.core.errors import HttpParseError
from wasmhttp.host.protocol import make_event
from wasmhttp.host.registry import ResponseRegistry
from wasmhttp.host.types import Envelope

logger = logging.getLogger(__name__)

STANDARD_METHODS = frozenset(
    {"GET", "POST", "PUT", "DELETE", "HEAD", "OPTIONS", "CONNECT", "TRACE", "PATCH"}
)

REQUEST_EVENT = "http.request"
DEFAULT_MAX_REQUEST_LINE = 8192
CLOSE_TIMEOUT = 1.0  # seconds to wait for open connections on close


@dataclass
class RequestLine:
    """Method and target of an HTTP request.

    Attributes:
        method: Request method token as sent (e.g. "GET").
        path: Request target (e.g. "/hello?x=1").
    """

    method: str
    path: str

    @property
    def is_standard(self) -> bool:
        return self.method in STANDARD_METHODS


def parse_request_line(line: bytes) -> RequestLine:
    """Parse "GET /path HTTP/1.1" into a RequestLine.

    Only the first two whitespace-separated tokens are used; the protocol
    version is ignored.

    Raises:
        HttpParseError: If the line is not UTF-8 or has fewer than two tokens.
    """
    try:
        text = line.decode("utf-8")
    except UnicodeDecodeError as e:
        raise HttpParseError(f"Invalid request encoding: {e}") from e

    parts = text.split()
    if len(parts) < 2:
        raise HttpParseError(f"Invalid request line: {text.strip()!r}")
    return RequestLine(method=parts[0], path=parts[1])


async def read_request_line(
    reader: asyncio.StreamReader,
    max_length: int = DEFAULT_MAX_REQUEST_LINE,
) -> RequestLine:
    """Read the request line, however many TCP segments it spans.

    Raises:
        HttpParseError: If the peer closes first or the line exceeds max_length.
    """
    try:
        line = await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            raise HttpParseError("Empty request") from None
        raise HttpParseError("Connection closed inside request line") from None
    except asyncio.LimitOverrunError:
        raise HttpParseError(f"Request line too long (limit {max_length})") from None

    if len(line) > max_length:
        raise HttpParseError(f"Request line too long: {len(line)} > {max_length}")

    return parse_request_line(line)


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown"


def format_head(
    status: int,
    headers: Mapping[str, str],
    keep_alive_timeout: int = 5,
    date: str | None = None,
) -> bytes:
    """Build the status line and header block, including the blank line."""
    if date is None:
        date = formatdate(usegmt=True)
    lines = [
        f"HTTP/1.1 {status} {reason_phrase(status)}",
        f"Date: {date}",
        "Connection: keep-alive",
        f"Keep-Alive: timeout={keep_alive_timeout}",
        "Transfer-Encoding: chunked",
    ]
    lines.extend(f"{name}: {value}" for name, value in headers.items())
    lines.append("")
    lines.append("")
    return "\r\n".join(lines).encode("utf-8")


def encode_chunked(body: bytes) -> bytes:
    """Frame a body as one chunk plus the terminating zero-length chunk.

    The chunk size is the byte length in upper-case hex. An empty body is sent
    as the terminating chunk alone.
    """
    if not body:
        return b"0\r\n\r\n"
    return f"{len(body):X}\r\n".encode("ascii") + body + b"\r\n0\r\n\r\n"


class PendingResponse:
    """A half-served connection waiting for the guest's response.

    Writes are serialized with an asyncio.Lock so a legacy ``http.writeHead``
    and the following ``http.end`` cannot interleave on the wire.

    Attributes:
        request_id: Registry id the guest uses to refer to this connection.
        request: The parsed request line.
        head_written: True once the status line and headers were sent.
    """

    def __init__(
        self,
        request_id: int,
        request: RequestLine,
        writer: asyncio.StreamWriter,
        keep_alive_timeout: int = 5,
    ) -> None:
        self.request_id = request_id
        self.request = request
        self.head_written = False
        self._writer = writer
        self._keep_alive_timeout = keep_alive_timeout
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write_head(self, status: int, headers: Mapping[str, str]) -> None:
        """Send the status line and headers.

        Raises:
            RuntimeError: If the head was already written.
            OSError: If the peer has gone away.
        """
        async with self._write_lock:
            if self.head_written:
                raise RuntimeError(f"Head already written for request {self.request_id}")
            self._writer.write(format_head(status, headers, self._keep_alive_timeout))
            self.head_written = True
            await self._writer.drain()

    async def end(self, body: str | bytes) -> None:
        """Send the chunked body, flush, and close the connection.

        Raises:
            OSError: If the peer has gone away.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        async with self._write_lock:
            try:
                self._writer.write(encode_chunked(body))
                await self._writer.drain()
            finally:
                await self._close_locked()

    async def respond(self, status: int, headers: Mapping[str, str], body: str | bytes) -> None:
        """Write head and body in one go."""
        await self.write_head(status, headers)
        await self.end(body)

    async def close(self) -> None:
        """Close the connection without writing anything further."""
        async with self._write_lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._writer.close()
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Connection close failed (already closed?): %s", e)


class HttpServer:
    """One listening socket and the connections it accepts.

    Every accepted connection runs in its own task (asyncio.start_server
    schedules them). The task reads the request line, registers the
    connection, emits ``http.request`` and returns.

    Attributes:
        _registry: Shared table of pending connections.
        _emit: Delivers an event to the guest; returns False if it could not.
        _config: Server settings (host, request line limit, eviction timeout).
    """

    def __init__(
        self,
        registry: ResponseRegistry,
        emit: Callable[[Envelope], bool],
        config: ServerConfig | None = None,
    ) -> None:
        self._registry = registry
        self._emit = emit
        self._config = config or ServerConfig()
        self._server: asyncio.Server | None = None
        self._evictions: set[asyncio.Task[None]] = set()

    @property
    def port(self) -> int | None:
        """Port actually bound (useful when listening on port 0)."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    async def start(self, port: int) -> None:
        """Bind and start accepting connections.

        Raises:
            OSError: If the address cannot be bound (e.g. port in use).
        """
        self._server = await asyncio.start_server(
            self.handle_connection,
            host=self._config.host,
            port=port,
            limit=self._config.max_request_line,
        )
        logger.info("HTTP server listening on %s:%s", self._config.host, self.port)

    async def close(self) -> None:
        """Stop accepting connections. Pending responses stay registered."""
        for task in list(self._evictions):
            task.cancel()
        if self._server is not None:
            self._server.close()
            try:
                await asyncio.wait_for(self._server.wait_closed(), CLOSE_TIMEOUT)
            except TimeoutError:
                logger.debug("Connections still open on port %s after close", self.port)
            logger.info("HTTP server on port %s stopped", self.port)

    async def handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one connection up to the point where the guest takes over."""
        try:
            request = await read_request_line(reader, self._config.max_request_line)
        except HttpParseError as e:
            logger.info("Closing connection: %s", e.message)
            await _close_writer(writer)
            return
        except (ConnectionError, OSError) as e:
            logger.info("Connection failed before request line: %s", e)
            await _close_writer(writer)
            return

        request_id = self._registry.allocate()

        if not request.is_standard:
            logger.debug("Ignoring non-standard method %r (id %d)", request.method, request_id)
            await _close_writer(writer)
            return

        response = PendingResponse(
            request_id, request, writer, self._config.keep_alive_timeout
        )
        self._registry.register(request_id, response)
        logger.debug("Request %d: %s %s", request_id, request.method, request.path)

        event = make_event(
            REQUEST_EVENT,
            [{"method": request.method, "url": request.path}, {"id": request_id}],
        )
        if not self._emit(event):
            taken = self._registry.take(request_id)
            if taken is not None:
                await taken.close()
            return

        if self._config.pending_timeout is not None:
            self._schedule_eviction(request_id, self._config.pending_timeout)

    def _schedule_eviction(self, request_id: int, timeout: float) -> None:
        task = asyncio.get_running_loop().create_task(self._evict_after(request_id, timeout))
        self._evictions.add(task)
        task.add_done_callback(self._evictions.discard)

    async def _evict_after(self, request_id: int, timeout: float) -> None:
        await asyncio.sleep(timeout)
        response = self._registry.take(request_id)
        if response is None:
            return
        logger.warning("Request %d not completed within %ss, answering 504", request_id, timeout)
        try:
            if response.head_written:
                await response.end(b"")
            else:
                await response.respond(int(HTTPStatus.GATEWAY_TIMEOUT), {}, b"")
        except (ConnectionError, OSError) as e:
            logger.debug("Failed to send 504 for request %d: %s", request_id, e)
            await response.close()


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
        await writer.wait_closed()
    except (ConnectionError, OSError) as e:
        logger.debug("Connection close failed (already closed?): %s", e)
