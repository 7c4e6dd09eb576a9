"""Message types exchanged over the guest/host channel."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Envelope:
    """A ``[command, payload]`` message.

    Attributes:
        command: Command or event name (e.g. "http.listen", "http.request").
        payload: Command-specific JSON value. Its shape is checked by the
            dispatcher, never by the codec.
    """

    command: str
    payload: Any = None

    def to_wire(self) -> list[Any]:
        """Return the two-element JSON array form."""
        return [self.command, self.payload]
