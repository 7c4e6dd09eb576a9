"""Runtime context tying the channel, dispatcher, registry and servers together.

One HostRuntime is built per process and passed explicitly to everything that
needs shared state; there are no module-level singletons.

Usage:
    runtime = HostRuntime(config)
    runtime.bind_loop()           # inside the running event loop
    runtime.attach(engine)
    ...
    await runtime.shutdown()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from wasmhttp.config.schema import Config
from wasmhttp.host.channel import ChannelBridge, GuestConsole, GuestExports
from wasmhttp.host.dispatcher import EventDispatcher
from wasmhttp.host.http import HttpServer
from wasmhttp.host.registry import ResponseRegistry
from wasmhttp.host.types import Envelope

logger = logging.getLogger(__name__)


class HostRuntime:
    """Shared state for one hosted guest.

    Attributes:
        config: Validated configuration.
        registry: Pending HTTP connections keyed by request id.
        channel: Character channel to and from the guest.
        dispatcher: Interprets guest commands.
        console: Line buffer behind spectest.print_char.
        servers: HTTP servers started by the guest, in start order.
    """

    def __init__(
        self,
        config: Config | None = None,
        write_line: Callable[[str], None] = print,
    ) -> None:
        self.config = config or Config()
        self.registry = ResponseRegistry()
        self.channel = ChannelBridge(self._schedule_dispatch, on_raw=write_line)
        self.dispatcher = EventDispatcher(self, self.registry)
        self.console = GuestConsole(write_line)
        self.servers: list[HttpServer] = []
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Remember the event loop dispatch tasks are spawned on."""
        self._loop = loop or asyncio.get_running_loop()

    def attach(self, guest: GuestExports) -> None:
        self.channel.attach(guest)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Start a detached task and keep a reference until it finishes."""
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Task %s failed: %s", task.get_name(), exc, exc_info=exc)

    def _schedule_dispatch(self, envelope: Envelope) -> None:
        # Called from h_se inside guest code: must return without waiting.
        self.spawn(self.dispatcher.dispatch(envelope), name=f"dispatch:{envelope.command}")

    def send_event(self, envelope: Envelope) -> bool:
        return self.channel.send_event(envelope)

    async def listen(self, port: int) -> None:
        """Start a new HTTP server on the given port.

        Raises:
            OSError: If the port cannot be bound.
        """
        if self.servers:
            logger.warning("http.listen called again; starting another server on port %d", port)
        server = HttpServer(self.registry, self.send_event, self.config.server)
        await server.start(port)
        self.servers.append(server)

    async def wait_idle(self) -> None:
        """Wait until every dispatch task spawned so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop servers, close pending connections and cancel dispatch tasks."""
        pending = self.registry.drain()
        if pending:
            logger.info("Closing %d pending connection(s)", len(pending))
        for response in pending:
            await response.close()

        for server in self.servers:
            await server.close()
        self.servers.clear()

        for task in list(self._tasks):
            task.cancel()
        self.console.flush()
