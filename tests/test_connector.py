"""Tests for the websockets connector against a local server."""

import asyncio
import http
import json
from urllib.parse import parse_qs, urlsplit

import pytest
from websockets.asyncio.server import ServerConnection, serve
from websockets.client import ClientProtocol
from websockets.frames import Frame, Opcode
from websockets.protocol import State
from websockets.uri import parse_uri

from overhear.config import OverhearConfig, UpstreamConfig
from overhear.errors import ChannelClosed, UpstreamConnectionError
from overhear.relay.connector import UpstreamConnector, UpstreamProtocol
from overhear.service import TranscriptionService
from overhear.sink import BroadcastSink
from overhear.wire import (
  BinaryFrame,
  CloseFrame,
  PingFrame,
  PongFrame,
  SessionErrorEvent,
  TextFrame,
  TranscriptEvent,
)


def result_json(transcript: str, is_final: bool) -> str:
  return json.dumps(
    {
      "type": "Results",
      "channel": {"alternatives": [{"transcript": transcript, "confidence": 0.9}]},
      "is_final": is_final,
    }
  )


def local_config(server, **upstream) -> OverhearConfig:
  port = server.sockets[0].getsockname()[1]
  return OverhearConfig(
    upstream=UpstreamConfig(url=f"ws://127.0.0.1:{port}/v1/listen", **upstream)
  )


class PongRecordingConnection(ServerConnection):
  """Server connection that records the payload of every pong it receives."""

  def __init__(self, *args, **kwargs) -> None:
    super().__init__(*args, **kwargs)
    self.pongs: list[bytes] = []

  def process_event(self, event) -> None:
    if isinstance(event, Frame) and event.opcode is Opcode.PONG:
      self.pongs.append(bytes(event.data))
    super().process_event(event)


class TestUpstreamConnector:
  """Test opening connections and the frame halves."""

  @pytest.mark.asyncio
  async def test_connection_refused(self):
    connector = UpstreamConnector(
      UpstreamConfig(url="ws://127.0.0.1:1/v1/listen", handshake_timeout=2.0)
    )

    with pytest.raises(UpstreamConnectionError, match="WebSocket connection failed"):
      await connector.connect("en", "secret-key")

  @pytest.mark.asyncio
  async def test_rejected_handshake(self):
    def reject(connection, request):
      return connection.respond(http.HTTPStatus.UNAUTHORIZED, "Invalid credentials\n")

    async def handler(websocket):
      await websocket.wait_closed()

    async with serve(handler, "127.0.0.1", 0, process_request=reject) as server:
      connector = UpstreamConnector(local_config(server).upstream)

      with pytest.raises(UpstreamConnectionError, match="401") as exc_info:
        await connector.connect("en", "secret-key")

    assert "secret-key" not in str(exc_info.value)

  @pytest.mark.asyncio
  async def test_request_carries_query_parameters(self):
    paths = []

    async def handler(websocket):
      paths.append(websocket.request.path)
      await websocket.wait_closed()

    async with serve(handler, "127.0.0.1", 0) as server:
      connector = UpstreamConnector(local_config(server).upstream)
      channel = await connector.connect("fr", "secret-key")
      await channel.sink.aclose()
      await channel.source.aclose()

    parts = urlsplit(paths[0])
    params = parse_qs(parts.query)
    assert parts.path == "/v1/listen"
    assert params["language"] == ["fr"]
    assert params["token"] == ["secret-key"]
    assert params["model"] == ["nova-2"]

  def test_protocol_leaves_pings_unanswered(self):
    """Test that a received ping becomes an event and queues no automatic pong."""
    uri = parse_uri("ws://127.0.0.1/v1/listen")
    default = ClientProtocol(uri, state=State.OPEN)
    upstream = UpstreamProtocol(uri, state=State.OPEN)

    for protocol in (default, upstream):
      protocol.receive_data(b"\x89\x04ping")

    assert default.data_to_send() != []
    assert upstream.data_to_send() == []

    [event] = upstream.events_received()
    assert event.opcode is Opcode.PING
    assert event.data == b"ping"

  @pytest.mark.asyncio
  async def test_frame_halves(self):
    """Test that text, binary, ping and close frames map onto the frame types."""
    received = []

    async def handler(websocket):
      await websocket.send('{"type": "Metadata"}')
      await websocket.send(b"\x01\x02")
      await websocket.ping(b"probe")
      async for message in websocket:
        received.append(message)

    async with serve(handler, "127.0.0.1", 0, ping_interval=None) as server:
      connector = UpstreamConnector(local_config(server, ping_interval=None).upstream)
      channel = await connector.connect("en", "key")
      frames = []

      async for frame in channel.source:
        frames.append(frame)
        # Pings are surfaced ahead of data messages, so wait until all three have arrived
        if len(frames) == 3:
          await channel.sink.send(PongFrame(b"probe"))
          await channel.sink.send(BinaryFrame(b"audio"))
          await channel.sink.send(CloseFrame())

      await channel.source.aclose()

    assert len(frames) == 4
    assert TextFrame('{"type": "Metadata"}') in frames[:3]
    assert BinaryFrame(b"\x01\x02") in frames[:3]
    assert PingFrame(b"probe") in frames[:3]
    assert frames[-1] == CloseFrame(code=1000, reason="")
    assert received == [b"audio"]


class TestEndToEnd:
  """Test full sessions through the service against a local server."""

  @pytest.mark.asyncio
  async def test_session_against_local_server(self):
    received_audio = []

    async def handler(websocket):
      await websocket.send(result_json("Hel", is_final=False))
      await websocket.send(result_json("Hello", is_final=True))
      await websocket.send(result_json("Hello", is_final=True))
      async for message in websocket:
        received_audio.append(message)

    async with serve(handler, "127.0.0.1", 0) as server:
      sink = BroadcastSink()
      events = sink.subscribe()
      service = TranscriptionService(local_config(server), "test-key", sink)

      await service.start("s1", "en")
      first = await asyncio.wait_for(events.get(), timeout=2.0)
      second = await asyncio.wait_for(events.get(), timeout=2.0)

      await service.push_audio("s1", b"\x00\x01")
      await service.push_audio("s1", b"\x02\x03")
      await service.stop("s1")

    assert first == TranscriptEvent(session_id="s1", is_final=False, text="Hel")
    assert second == TranscriptEvent(session_id="s1", is_final=True, text="Hello")
    assert events.empty()
    assert received_audio == [b"\x00\x01", b"\x02\x03"]

  @pytest.mark.asyncio
  async def test_keepalive_answered(self):
    """Test that the service receives exactly one pong per ping."""
    connections = []

    async def handler(websocket):
      connections.append(websocket)
      pong_waiter = await websocket.ping(b"are-you-there")
      await pong_waiter
      await websocket.send(result_json("after ping", is_final=True))
      await websocket.wait_closed()

    async with serve(
      handler, "127.0.0.1", 0, ping_interval=None, create_connection=PongRecordingConnection
    ) as server:
      sink = BroadcastSink()
      events = sink.subscribe()
      service = TranscriptionService(local_config(server, ping_interval=None), "key", sink)

      await service.start("s1", "en")
      event = await asyncio.wait_for(events.get(), timeout=2.0)
      status = service.status()["sessions"]["s1"]
      await service.stop("s1")

    assert event.text == "after ping"
    assert status["keepalives_answered"] == 1
    assert connections[0].pongs == [b"are-you-there"]

  @pytest.mark.asyncio
  async def test_abnormal_close_reported(self):
    async def handler(websocket):
      await websocket.close(code=1011, reason="internal error")

    async with serve(handler, "127.0.0.1", 0) as server:
      sink = BroadcastSink()
      events = sink.subscribe()
      service = TranscriptionService(local_config(server), "key", sink)

      await service.start("s1", "en")
      event = await asyncio.wait_for(events.get(), timeout=2.0)

      await service.registry.sessions["s1"].wait_closed()
      with pytest.raises(ChannelClosed):
        await service.push_audio("s1", b"\x00")
      await service.stop("s1")

    assert isinstance(event, SessionErrorEvent)
    assert event.session_id == "s1"
