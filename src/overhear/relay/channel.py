"""
Protocol interfaces for the two halves of an upstream connection.

A connection is split into a send half and a receive half right after the handshake and the halves
are never rejoined. Implementations exist for the websockets client (``connector``) and for tests.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from overhear.wire import InboundFrame, OutboundFrame


class FrameSink(Protocol):
  """Send half of an upstream connection."""

  async def send(self, frame: OutboundFrame) -> None:
    """
    Write one complete frame.

    :param frame: Binary audio, a pong, or the close frame.
    :raises SendError: If the write fails.
    """
    ...

  async def aclose(self) -> None:
    """Close the underlying connection without raising."""
    ...


class FrameSource(Protocol):
  """Receive half of an upstream connection."""

  def __aiter__(self) -> AsyncIterator[InboundFrame]:
    """
    Iterate over inbound frames in arrival order.

    Iteration ends after a ``CloseFrame`` is yielded. A transport failure raises
    ``TransportError`` from the iterator.
    """
    ...

  async def aclose(self) -> None:
    """Stop reading and release any pending receive."""
    ...


@dataclass(frozen=True)
class UpstreamChannel:
  """An established upstream connection, split into its two halves."""

  sink: FrameSink
  source: FrameSource


class Connector(Protocol):
  """Opens upstream connections for new sessions."""

  async def connect(self, language: str, credential: str) -> UpstreamChannel:
    """
    Establish one streaming connection.

    :raises UpstreamConnectionError: If the handshake fails.
    """
    ...
