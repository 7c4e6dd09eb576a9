"""Shared fixtures for host tests."""

from collections.abc import Callable
from typing import Any

import pytest

from wasmhttp.config.schema import Config, ServerConfig
from wasmhttp.host.channel import ChannelBridge
from wasmhttp.host.protocol import decode_bytes, encode_units
from wasmhttp.host.types import Envelope


class FakeGuest:
    """Stand-in for an instantiated guest exporting h_rd/h_re.

    Bytes delivered through h_rd are collected; on h_re the message is decoded
    and, when a reply function is set, its answer is pushed back through the
    channel the way a real guest would (h_sd per code unit, then h_se).
    """

    def __init__(self, exports: tuple[str, ...] = ("h_rd", "h_re")) -> None:
        self.exports = set(exports)
        self.calls: list[tuple[str, tuple[int, ...]]] = []
        self.received: list[Envelope | None] = []
        self.channel: ChannelBridge | None = None
        self.reply: Callable[[Envelope], Envelope | None] | None = None
        self._bytes = bytearray()

    def has_export(self, name: str) -> bool:
        return name in self.exports

    def call(self, name: str, *args: int) -> Any:
        self.calls.append((name, args))
        if name == "h_rd":
            self._bytes.append(args[0])
        elif name == "h_re":
            envelope = decode_bytes(bytes(self._bytes))
            self._bytes.clear()
            self.received.append(envelope)
            if envelope is not None and self.reply is not None:
                answer = self.reply(envelope)
                if answer is not None:
                    self.send(answer)
        return None

    def send(self, envelope: Envelope) -> None:
        """Emit an envelope to the host as the guest would."""
        assert self.channel is not None
        for unit in encode_units(envelope):
            self.channel.push_char(unit)
        self.channel.end_message()


@pytest.fixture
def fake_guest() -> FakeGuest:
    return FakeGuest()


@pytest.fixture
def local_config() -> Config:
    """Config binding servers to localhost only."""
    return Config(server=ServerConfig(host="127.0.0.1"))
