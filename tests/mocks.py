"""In-memory stand-ins for upstream connections and event listeners."""

import asyncio
import json

from overhear.errors import SendError, TransportError, UpstreamConnectionError
from overhear.relay.channel import UpstreamChannel
from overhear.wire import (
  CloseFrame,
  InboundFrame,
  OutboundFrame,
  RelayEvent,
  SessionErrorEvent,
  TextFrame,
  TranscriptEvent,
)


def result_message(transcript: str | None, is_final: bool = False) -> TextFrame:
  """Build an upstream result message carrying one alternative."""
  alternative = {"transcript": transcript, "confidence": 0.98}
  message = {
    "type": "Results",
    "channel": {"alternatives": [alternative]},
    "is_final": is_final,
  }
  return TextFrame(json.dumps(message))


class MockFrameSource:
  """Receive half fed by the test. Ends after a close frame or a transport failure."""

  def __init__(self):
    self._items: asyncio.Queue[InboundFrame | Exception | None] = asyncio.Queue()
    self._finished = False
    self.closed = False

  def feed(self, frame: InboundFrame) -> None:
    self._items.put_nowait(frame)

  def fail(self, error: Exception | None = None) -> None:
    """Make the next read raise a transport failure."""
    self._items.put_nowait(error or TransportError("Mock connection reset"))

  def finish(self, code: int | None = 1000) -> None:
    """Deliver the remote close frame."""
    self._items.put_nowait(CloseFrame(code=code))

  def __aiter__(self):
    return self

  async def __anext__(self) -> InboundFrame:
    if self._finished:
      raise StopAsyncIteration

    item = await self._items.get()
    if item is None:
      self._finished = True
      raise StopAsyncIteration
    if isinstance(item, Exception):
      self._finished = True
      raise item
    if isinstance(item, CloseFrame):
      self._finished = True
    return item

  async def aclose(self) -> None:
    self.closed = True
    self._items.put_nowait(None)


class MockFrameSink:
  """Send half that records frames. Sending the close frame closes the paired source."""

  def __init__(self, source: MockFrameSource, should_fail: bool = False):
    self.source = source
    self.frames: list[OutboundFrame] = []
    self.should_fail = should_fail
    self.closed = False
    self.close_calls = 0
    self.write_gate = asyncio.Event()
    self.write_gate.set()
    self.write_started = asyncio.Event()

  async def send(self, frame: OutboundFrame) -> None:
    if self.closed:
      raise SendError("Mock connection already closed")
    self.write_started.set()
    await self.write_gate.wait()
    if self.should_fail:
      raise SendError("Mock write failed")

    self.frames.append(frame)
    if isinstance(frame, CloseFrame):
      self.closed = True
      self.source.finish(frame.code or 1000)

  async def aclose(self) -> None:
    self.close_calls += 1
    if not self.closed:
      self.closed = True
      self.source.finish(1006)

  def hold_writes(self) -> None:
    """Block writes until ``release_writes`` is called."""
    self.write_gate.clear()
    self.write_started.clear()

  def release_writes(self) -> None:
    self.write_gate.set()

  def frames_of(self, frame_type: type) -> list:
    return [frame for frame in self.frames if isinstance(frame, frame_type)]


class MockConnection:
  """A paired send and receive half, as produced by ``MockConnector``."""

  def __init__(self, language: str, credential: str):
    self.language = language
    self.credential = credential
    self.source = MockFrameSource()
    self.sink = MockFrameSink(self.source)

  @property
  def channel(self) -> UpstreamChannel:
    return UpstreamChannel(sink=self.sink, source=self.source)


class MockConnector:
  """Connector that hands out in-memory connections."""

  def __init__(self, should_fail: bool = False):
    self.should_fail = should_fail
    self.connections: list[MockConnection] = []
    self.connect_attempts = 0
    self.connect_gate = asyncio.Event()
    self.connect_gate.set()

  async def connect(self, language: str, credential: str) -> UpstreamChannel:
    self.connect_attempts += 1
    await self.connect_gate.wait()
    if self.should_fail:
      raise UpstreamConnectionError("WebSocket connection failed: Mock handshake refused")

    connection = MockConnection(language, credential)
    self.connections.append(connection)
    return connection.channel

  @property
  def last(self) -> MockConnection:
    return self.connections[-1]


class RecordingListener:
  """Event listener that keeps every event it receives."""

  def __init__(self):
    self.events: list[RelayEvent] = []
    self.received = asyncio.Event()

  def __call__(self, event: RelayEvent) -> None:
    self.events.append(event)
    self.received.set()

  def transcripts(self, session_id: str | None = None) -> list[TranscriptEvent]:
    return [
      event
      for event in self.events
      if isinstance(event, TranscriptEvent)
      and (session_id is None or event.session_id == session_id)
    ]

  def errors(self) -> list[SessionErrorEvent]:
    return [event for event in self.events if isinstance(event, SessionErrorEvent)]

  async def wait_for(self, count: int, timeout: float = 1.0) -> None:
    """Wait until at least ``count`` events have arrived."""

    async def _wait():
      while len(self.events) < count:
        self.received.clear()
        await self.received.wait()

    await asyncio.wait_for(_wait(), timeout)


async def settle(iterations: int = 10) -> None:
  """Let pending tasks run."""
  for _ in range(iterations):
    await asyncio.sleep(0)
