"""Envelope codec for the guest/host character channel.

Messages are JSON arrays ``[command, payload]`` carried as UTF-16 text.
Guest to host, each 16-bit code unit arrives through one ``h_sd`` call.
Host to guest, every code unit is split into two big-endian bytes and each
byte is delivered through one ``h_rd`` call.

Nothing here performs I/O. Decoding never raises: anything that is not a
well-formed envelope yields None so the caller can fall back to printing the
raw text (guests use the same channel for plain debug output).
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from wasmhttp.core.errors import ChannelError
from wasmhttp.host.types import Envelope

logger = logging.getLogger(__name__)

CODE_UNIT_MASK = 0xFFFF


class DecodeError(ChannelError):
    """Raised when channel data is not valid UTF-16 or not an envelope."""


def units_to_text(units: Iterable[int]) -> str:
    """Decode 16-bit code units as UTF-16 and strip null padding.

    Raises:
        DecodeError: If the units contain unpaired surrogates.
    """
    raw = b"".join((unit & CODE_UNIT_MASK).to_bytes(2, "big") for unit in units)
    try:
        text = raw.decode("utf-16-be")
    except UnicodeDecodeError as e:
        raise DecodeError(f"Invalid UTF-16: {e}") from e
    return text.replace("\0", "")


def bytes_to_units(data: bytes) -> list[int]:
    """Pair big-endian bytes back into 16-bit code units.

    Raises:
        DecodeError: If the byte count is odd.
    """
    if len(data) % 2:
        raise DecodeError(f"Odd byte count: {len(data)}")
    return [(data[i] << 8) | data[i + 1] for i in range(0, len(data), 2)]


def parse_envelope(text: str) -> Envelope:
    """Parse JSON text into an Envelope.

    Raises:
        DecodeError: If the text is not JSON or not a ``[str, any]`` pair.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list) or len(data) != 2:
        raise DecodeError("Message must be a two-element array")

    command, payload = data
    if not isinstance(command, str):
        raise DecodeError(f"command must be a string, got: {type(command).__name__}")

    return Envelope(command=command, payload=payload)


def decode_text(text: str) -> Envelope | None:
    """Decode already-assembled text, tolerating null padding."""
    try:
        return parse_envelope(text.replace("\0", ""))
    except DecodeError as e:
        logger.debug("Not an envelope: %s", e)
        return None


def decode_units(units: Iterable[int]) -> Envelope | None:
    """Decode a sequence of 16-bit code units into an Envelope."""
    try:
        text = units_to_text(units)
    except DecodeError as e:
        logger.debug("Undecodable channel data: %s", e)
        return None
    return decode_text(text)


def decode_bytes(data: bytes) -> Envelope | None:
    """Decode big-endian byte pairs (the host-to-guest form) into an Envelope."""
    try:
        units = bytes_to_units(data)
    except DecodeError as e:
        logger.debug("Undecodable channel data: %s", e)
        return None
    return decode_units(units)


def serialize_envelope(envelope: Envelope) -> str:
    """Serialize an Envelope to compact JSON text (no trailing newline)."""
    return json.dumps(envelope.to_wire(), separators=(",", ":"), ensure_ascii=False)


def encode(envelope: Envelope) -> bytes:
    """Encode an Envelope as the byte stream delivered through ``h_rd``.

    Every UTF-16 code unit becomes two bytes, high byte first.
    """
    return serialize_envelope(envelope).encode("utf-16-be")


def encode_units(envelope: Envelope) -> list[int]:
    """Encode an Envelope as 16-bit code units (the ``h_sd`` form)."""
    return bytes_to_units(encode(envelope))


def make_event(command: str, payload: Any) -> Envelope:
    """Build an Envelope for an event sent to the guest."""
    return Envelope(command=command, payload=payload)
