"""Duplex character channel between the host and the guest module.

The guest cannot share memory layouts with the host, so every message travels
one character at a time through four functions:

    guest -> host   h_sd(code_unit)   append one UTF-16 code unit
                    h_se()            message complete
    host -> guest   h_rd(byte)        deliver one byte (two per code unit)
                    h_re()            message complete

h_sd/h_se are host functions registered on the engine. h_rd/h_re are guest
exports looked up by name on every send, so sending before instantiation fails
cleanly instead of crashing.

A separate diagnostic sink, ``spectest.print_char``, collects characters into
lines for guests that print debug text.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any, Protocol

from wasmhttp.core.errors import ChannelNotInitializedError, GuestError
from wasmhttp.host.protocol import DecodeError, encode, parse_envelope, units_to_text
from wasmhttp.host.types import Envelope

logger = logging.getLogger(__name__)

RECEIVE_EXPORT = "h_rd"
RECEIVE_END_EXPORT = "h_re"
SEND_IMPORT = "h_sd"
SEND_END_IMPORT = "h_se"


class GuestExports(Protocol):
    """The part of an instantiated guest the channel needs."""

    def has_export(self, name: str) -> bool: ...

    def call(self, name: str, *args: int) -> Any: ...


class ChannelBridge:
    """Assembles guest messages and transmits host events.

    Thread-safe: the accumulation buffer is guarded by a lock held only while
    it is mutated, and guest calls are serialized by a re-entrant lock so a
    guest that answers from inside h_re cannot interleave with another send.

    Attributes:
        _on_envelope: Called with every decoded guest message. Must not block;
            the runtime uses it to spawn a dispatch task.
        _on_raw: Called with guest text that is not an envelope.
        _guest: Instantiated guest, or None until attach() is called.
    """

    def __init__(
        self,
        on_envelope: Callable[[Envelope], None],
        on_raw: Callable[[str], None] | None = None,
    ) -> None:
        self._on_envelope = on_envelope
        self._on_raw = on_raw
        self._guest: GuestExports | None = None
        self._buffer: list[int] = []
        self._buffer_lock = threading.Lock()
        self._send_lock = threading.RLock()

    def attach(self, guest: GuestExports) -> None:
        """Connect the channel to an instantiated guest."""
        self._guest = guest

    @property
    def attached(self) -> bool:
        return self._guest is not None

    # -- guest -> host ----------------------------------------------------

    def push_char(self, code_unit: int) -> None:
        """Host function ``h_sd``: append one code unit to the buffer."""
        with self._buffer_lock:
            self._buffer.append(code_unit & 0xFFFF)

    def end_message(self) -> None:
        """Host function ``h_se``: decode the buffered message and hand it on.

        The buffer is cleared whether or not decoding succeeds. Called from
        inside guest code, so this never raises.
        """
        with self._buffer_lock:
            units = self._buffer
            self._buffer = []

        if not units:
            return

        try:
            text = units_to_text(units)
        except DecodeError as e:
            logger.warning("Dropping guest message: %s", e)
            logger.debug("Raw guest message: %r", _lossy_text(units))
            return

        try:
            envelope = parse_envelope(text)
        except DecodeError as e:
            logger.warning("Failed to parse guest message: %s", e)
            logger.debug("Raw guest message: %r", text)
            if self._on_raw is not None:
                self._on_raw(text)
            return

        logger.debug("Received %s from guest", envelope.command)
        try:
            self._on_envelope(envelope)
        except Exception as e:
            logger.error("Failed to schedule %s: %s", envelope.command, e, exc_info=True)

    # -- host -> guest ----------------------------------------------------

    def send(self, envelope: Envelope) -> None:
        """Transmit an envelope to the guest, one byte per h_rd call.

        Raises:
            ChannelNotInitializedError: If no guest is attached or it lacks
                the receive exports.
            GuestError: If the guest traps while receiving.
        """
        guest = self._guest
        if guest is None:
            raise ChannelNotInitializedError(RECEIVE_EXPORT)
        for export in (RECEIVE_EXPORT, RECEIVE_END_EXPORT):
            if not guest.has_export(export):
                raise ChannelNotInitializedError(export)

        data = encode(envelope)
        with self._send_lock:
            for byte in data:
                guest.call(RECEIVE_EXPORT, byte)
            guest.call(RECEIVE_END_EXPORT)
        logger.debug("Sent %s to guest (%d bytes)", envelope.command, len(data))

    def send_event(self, envelope: Envelope) -> bool:
        """Transmit an envelope, logging instead of raising on failure.

        Returns:
            True if the guest received the whole message.
        """
        try:
            self.send(envelope)
        except ChannelNotInitializedError as e:
            logger.error("%s; dropping %s", e.message, envelope.command)
            return False
        except GuestError as e:
            logger.error("Guest failed to receive %s: %s", envelope.command, e.message)
            return False
        return True


class GuestConsole:
    """Line buffer behind the guest's ``spectest.print_char`` import.

    Characters accumulate until a newline, then the line is written out.
    Carriage returns are dropped.
    """

    def __init__(self, write_line: Callable[[str], None]) -> None:
        self._write_line = write_line
        self._units: list[int] = []
        self._lock = threading.Lock()

    def print_char(self, ch: int) -> None:
        if ch == ord("\r"):
            return
        with self._lock:
            if ch != ord("\n"):
                self._units.append(ch & 0xFFFF)
                return
            units = self._units
            self._units = []
        self._write_line(_lossy_text(units))

    def flush(self) -> None:
        """Write out a trailing partial line, if any."""
        with self._lock:
            units = self._units
            self._units = []
        if units:
            self._write_line(_lossy_text(units))


def _lossy_text(units: list[int]) -> str:
    raw = b"".join(unit.to_bytes(2, "big") for unit in units)
    return raw.decode("utf-16-be", errors="replace")
