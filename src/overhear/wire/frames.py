"""
Frame types exchanged over an upstream streaming connection.

The relay never touches a transport object directly. Send halves accept outbound frames and
receive halves yield inbound frames, which keeps the relay loops independent of the WebSocket
library and lets tests drive them with in-memory channels.
"""

from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True)
class BinaryFrame:
  """An opaque binary payload (audio upstream, ignored downstream)."""

  payload: bytes


@dataclass(frozen=True)
class TextFrame:
  """A UTF-8 text message, carrying JSON results from the recognition service."""

  text: str


@dataclass(frozen=True)
class PingFrame:
  """A liveness probe that must be answered with a pong carrying the same payload."""

  payload: bytes = b""


@dataclass(frozen=True)
class PongFrame:
  """A liveness reply."""

  payload: bytes = b""


@dataclass(frozen=True)
class CloseFrame:
  """The closing handshake frame."""

  code: int | None = None
  reason: str = ""


OutboundFrame: TypeAlias = BinaryFrame | PongFrame | CloseFrame
InboundFrame: TypeAlias = TextFrame | BinaryFrame | PingFrame | PongFrame | CloseFrame
