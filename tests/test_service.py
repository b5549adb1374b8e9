"""Tests for the invocation layer and the event sink."""

import pytest

from overhear.config import OverhearConfig
from overhear.errors import InvalidSession, MissingCredentialError, SessionNotFound
from overhear.service import TranscriptionService
from overhear.sink import BroadcastSink
from overhear.wire import BinaryFrame, CloseFrame, SessionErrorEvent, TranscriptEvent

from .mocks import MockConnector, RecordingListener, result_message


@pytest.fixture
def connector():
  return MockConnector()


@pytest.fixture
def sink():
  return BroadcastSink()


class TestBroadcastSink:
  """Test fan-out of events to listeners and subscribers."""

  def test_every_listener_receives_event(self, sink):
    first, second = RecordingListener(), RecordingListener()
    sink.add_listener(first)
    sink.add_listener(second)
    event = TranscriptEvent(session_id="s1", is_final=False, text="hi")

    sink.emit(event)

    assert first.events == [event]
    assert second.events == [event]
    assert sink.events_emitted == 1

  def test_failing_listener_does_not_affect_others(self, sink):
    def broken(event):
      raise RuntimeError("listener bug")

    recorder = RecordingListener()
    sink.add_listener(broken)
    sink.add_listener(recorder)

    sink.emit(SessionErrorEvent(session_id="s1", message="gone"))

    assert len(recorder.events) == 1
    assert sink.listener_errors == 1

  def test_remove_listener(self, sink):
    recorder = RecordingListener()
    sink.add_listener(recorder)
    sink.remove_listener(recorder)
    sink.remove_listener(recorder)

    sink.emit(TranscriptEvent(session_id="s1", is_final=True, text="x"))

    assert recorder.events == []

  @pytest.mark.asyncio
  async def test_subscriber_queue(self, sink):
    queue = sink.subscribe()
    event = TranscriptEvent(session_id="s1", is_final=True, text="queued")

    sink.emit(event)

    assert await queue.get() == event

    sink.unsubscribe(queue)
    sink.emit(event)
    assert queue.empty()

  @pytest.mark.asyncio
  async def test_bounded_subscriber_drops_when_full(self, sink):
    """Test that a full subscriber queue drops new events without affecting other subscribers."""
    bounded = sink.subscribe(maxsize=1)
    unbounded = sink.subscribe()
    first = TranscriptEvent(session_id="s1", is_final=True, text="first")
    second = TranscriptEvent(session_id="s1", is_final=True, text="second")

    sink.emit(first)
    sink.emit(second)

    assert bounded.qsize() == 1
    assert await bounded.get() == first
    assert unbounded.qsize() == 2
    assert sink.events_dropped == 1


class TestTranscriptionService:
  """Test the start / push / stop surface."""

  def test_missing_credential_rejected(self, sink, connector):
    with pytest.raises(MissingCredentialError):
      TranscriptionService(OverhearConfig(), None, sink, connector)

    with pytest.raises(MissingCredentialError):
      TranscriptionService(OverhearConfig(), "", sink, connector)

    assert connector.connect_attempts == 0

  @pytest.mark.asyncio
  async def test_start_uses_default_language(self, sink, connector):
    service = TranscriptionService(OverhearConfig(default_language="nl"), "key", sink, connector)

    await service.start("s1")
    await service.start("s2", "ja")

    assert [c.language for c in connector.connections] == ["nl", "ja"]
    assert all(c.credential == "key" for c in connector.connections)
    await service.shutdown()

  @pytest.mark.asyncio
  async def test_session_round_trip(self, sink, connector):
    service = TranscriptionService(OverhearConfig(), "key", sink, connector)
    events = sink.subscribe()

    await service.start("s1", "en")
    await service.push_audio("s1", b"\x00\x01")
    connector.last.source.feed(result_message("Hello", is_final=True))

    assert await events.get() == TranscriptEvent(session_id="s1", is_final=True, text="Hello")

    await service.stop("s1")

    assert connector.last.sink.frames == [BinaryFrame(b"\x00\x01"), CloseFrame()]
    assert service.status()["sessions"] == {}
    with pytest.raises(InvalidSession):
      await service.push_audio("s1", b"\x02")
    with pytest.raises(SessionNotFound):
      await service.stop("s1")

  @pytest.mark.asyncio
  async def test_shutdown_stops_all_sessions(self, sink, connector):
    service = TranscriptionService(OverhearConfig(), "key", sink, connector)
    for session_id in ("a", "b"):
      await service.start(session_id)

    await service.shutdown()

    assert service.registry.get_session_count() == 0
    assert all(c.sink.frames == [CloseFrame()] for c in connector.connections)
