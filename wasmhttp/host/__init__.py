"""Guest hosting: channel, codec, dispatcher, registry and HTTP server."""

from wasmhttp.host.channel import ChannelBridge, GuestConsole
from wasmhttp.host.dispatcher import EventDispatcher
from wasmhttp.host.http import HttpServer, PendingResponse, RequestLine
from wasmhttp.host.protocol import decode_bytes, decode_text, decode_units, encode, encode_units
from wasmhttp.host.registry import ResponseRegistry
from wasmhttp.host.runtime import HostRuntime
from wasmhttp.host.types import Envelope

__all__ = [
    "ChannelBridge",
    "Envelope",
    "EventDispatcher",
    "GuestConsole",
    "HostRuntime",
    "HttpServer",
    "PendingResponse",
    "RequestLine",
    "ResponseRegistry",
    "decode_bytes",
    "decode_text",
    "decode_units",
    "encode",
    "encode_units",
]
