"""
WebSocket implementation of the upstream connection.

Opens one ``websockets`` client connection per session and exposes it as a send half
(``WebSocketFrameSink``) and a receive half (``WebSocketFrameSource``).

Keepalive handling:
  websockets normally answers every inbound ping inside its protocol layer and never returns ping
  frames from ``recv()``. ``UpstreamProtocol`` turns the automatic reply off and
  ``UpstreamConnection`` reports each ping so the receive half can yield it as a ``PingFrame``.
  The dispatch relay's pong is the only reply the service receives.
"""

import asyncio
import contextlib
from collections.abc import Callable

from websockets.asyncio.client import ClientConnection, connect
from websockets.client import ClientProtocol
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.frames import Frame, Opcode

from overhear.config import UpstreamConfig
from overhear.errors import SendError, TransportError, UpstreamConnectionError
from overhear.logs import get_logger, redact_credentials
from overhear.relay.channel import UpstreamChannel
from overhear.wire import (
  BinaryFrame,
  CloseFrame,
  InboundFrame,
  OutboundFrame,
  PingFrame,
  PongFrame,
  TextFrame,
)


class UpstreamProtocol(ClientProtocol):
  """Client protocol that queues inbound pings as events without answering them."""

  def recv_frame(self, frame: Frame) -> None:
    if frame.opcode is Opcode.PING:
      self.events.append(frame)
      return
    super().recv_frame(frame)


class UpstreamConnection(ClientConnection):
  """Client connection that reports inbound ping frames to a listener."""

  ping_listener: Callable[[bytes], None] | None = None

  def __init__(self, protocol: ClientProtocol, **kwargs) -> None:
    # connect() always builds a plain ClientProtocol; no frame has been parsed yet
    protocol.__class__ = UpstreamProtocol
    super().__init__(protocol, **kwargs)

  def process_event(self, event) -> None:
    super().process_event(event)
    if isinstance(event, Frame) and event.opcode is Opcode.PING and self.ping_listener is not None:
      self.ping_listener(bytes(event.data))


class WebSocketFrameSink:
  """Send half backed by a websockets client connection."""

  def __init__(self, websocket: ClientConnection) -> None:
    self.websocket = websocket
    self.logger = get_logger("ws/sink")

  async def send(self, frame: OutboundFrame) -> None:
    try:
      match frame:
        case BinaryFrame(payload=payload):
          await self.websocket.send(payload)
        case PongFrame(payload=payload):
          await self.websocket.pong(payload)
        case CloseFrame(code=code, reason=reason):
          await self.websocket.close(code=code or 1000, reason=reason)
    except ConnectionClosed as e:
      raise SendError(f"Upstream connection closed: {e}") from e
    except (OSError, WebSocketException) as e:
      raise SendError(f"Upstream write failed: {e}") from e

  async def aclose(self) -> None:
    try:
      await self.websocket.close()
    except (OSError, WebSocketException) as e:
      self.logger.debug("Error closing upstream connection", error=str(e))


class WebSocketFrameSource:
  """
  Receive half backed by a websockets client connection.

  Yields text and binary messages from ``recv()`` interleaved with the pings reported by
  ``UpstreamConnection``. A normal closure yields one ``CloseFrame`` and ends iteration; an
  abnormal one raises ``TransportError``.
  """

  def __init__(self, websocket: UpstreamConnection) -> None:
    self.websocket = websocket
    self._pings: asyncio.Queue[bytes] = asyncio.Queue()
    self._recv_task: asyncio.Task | None = None
    self._finished = False
    websocket.ping_listener = self._pings.put_nowait

  def __aiter__(self) -> "WebSocketFrameSource":
    return self

  async def __anext__(self) -> InboundFrame:
    if self._finished:
      raise StopAsyncIteration

    if not self._pings.empty():
      return PingFrame(self._pings.get_nowait())

    # A pending recv() survives across calls so no message is lost when a ping wins the race
    if self._recv_task is None:
      self._recv_task = asyncio.ensure_future(self.websocket.recv())

    ping_task = asyncio.ensure_future(self._pings.get())
    try:
      await asyncio.wait([self._recv_task, ping_task], return_when=asyncio.FIRST_COMPLETED)
    finally:
      ping_task.cancel()

    if ping_task.done() and not ping_task.cancelled():
      return PingFrame(ping_task.result())

    recv_task, self._recv_task = self._recv_task, None
    try:
      message = recv_task.result()
    except ConnectionClosedOK as e:
      self._finished = True
      return CloseFrame(
        code=e.rcvd.code if e.rcvd else None,
        reason=e.rcvd.reason if e.rcvd else "",
      )
    except ConnectionClosed as e:
      self._finished = True
      raise TransportError(f"Upstream connection lost: {e}") from e

    if isinstance(message, str):
      return TextFrame(message)
    return BinaryFrame(bytes(message))

  async def aclose(self) -> None:
    self._finished = True
    self.websocket.ping_listener = None
    if self._recv_task is not None and not self._recv_task.done():
      self._recv_task.cancel()
      with contextlib.suppress(asyncio.CancelledError, ConnectionClosed):
        await self._recv_task
    self._recv_task = None


class UpstreamConnector:
  """Opens streaming recognition connections with the configured model and options."""

  def __init__(self, config: UpstreamConfig | None = None) -> None:
    self.config = config or UpstreamConfig()
    self.logger = get_logger("ws/connector")

  async def connect(self, language: str, credential: str) -> UpstreamChannel:
    """
    Open one upstream connection.

    :param language: Recognition language code.
    :param credential: Bearer credential, passed as the ``token`` query parameter.
    :returns: The connection split into its send and receive halves.
    :raises UpstreamConnectionError: If the handshake fails or times out.
    """
    url = self.config.build_url(language, credential)
    self.logger.debug("Connecting upstream", url=self.config.redacted_url(language))

    try:
      websocket = await connect(
        url,
        create_connection=UpstreamConnection,
        open_timeout=self.config.handshake_timeout,
        ping_interval=self.config.ping_interval,
        close_timeout=self.config.close_timeout,
      )
    except (OSError, WebSocketException) as e:
      message = redact_credentials(str(e)) or type(e).__name__
      raise UpstreamConnectionError(f"WebSocket connection failed: {message}") from e

    assert isinstance(websocket, UpstreamConnection)
    self.logger.info("Upstream connected", language=language, model=self.config.model)
    return UpstreamChannel(
      sink=WebSocketFrameSink(websocket), source=WebSocketFrameSource(websocket)
    )
