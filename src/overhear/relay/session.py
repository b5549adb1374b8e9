import asyncio
import time
from collections.abc import Callable
from typing import TypedDict

from overhear.config import SessionConfig
from overhear.logs import get_logger
from overhear.relay.channel import UpstreamChannel
from overhear.relay.dispatch import DispatchRelay
from overhear.relay.ingest import IngestQueue, IngestRelay
from overhear.relay.sender import SendActor
from overhear.wire import RelayEvent, SessionErrorEvent


class SessionStatusDict(TypedDict):
  """Status information for a single relay session."""

  language: str
  uptime: float
  queue_depth: int
  frames_enqueued: int
  frames_forwarded: int
  bytes_sent: int
  results_accepted: int
  duplicates_suppressed: int
  messages_skipped: int
  keepalives_answered: int
  stopping: bool
  defunct: bool
  failure: str | None


def _task_outcome(task: asyncio.Task) -> BaseException | None:
  """The exception a finished relay task raised or returned, if any."""
  if task.cancelled():
    return None
  if (exc := task.exception()) is not None:
    return exc
  return task.result()


class RelaySession:
  """
  One transcription session: an upstream connection and the relays bound to its two halves.

  Lifecycle:
    1. ``start()`` spawns the send actor, the ingest relay, the dispatch relay and a supervisor.
    2. Audio pushed into ``queue`` flows upstream; accepted results flow to ``emit``.
    3. When either relay ends, the supervisor makes sure the other one follows, stops the send
       actor, closes the connection once and marks the session defunct.
    4. ``shutdown()`` is the caller-initiated end: it closes the queue, silences the session and
       waits (bounded) for the supervisor.

  A relay failure that happens while the session is not shutting down is reported to the sink as
  a ``SessionErrorEvent``.
  """

  def __init__(
    self,
    session_id: str,
    language: str,
    channel: UpstreamChannel,
    emit: Callable[[RelayEvent], None],
    config: SessionConfig,
  ) -> None:
    self.session_id = session_id
    self.language = language
    self.channel = channel
    self.config = config
    self.logger = get_logger("relay/session", session=session_id)

    self._emit_event = emit
    self.queue = IngestQueue(session_id, config.queue_capacity)
    self.sender = SendActor(channel.sink, session_id)
    self.ingest = IngestRelay(session_id, self.queue, self.sender)
    self.dispatch = DispatchRelay(session_id, channel.source, self.sender, self._emit)

    self.started_at = time.time()
    self.stopping = False
    self.defunct = False
    self.failure: BaseException | None = None

    self._ingest_task: asyncio.Task | None = None
    self._dispatch_task: asyncio.Task | None = None
    self._supervisor_task: asyncio.Task | None = None
    self._channel_closed = False

  def start(self) -> None:
    """Spawn the relay tasks."""
    self.sender.start()

    self._ingest_task = asyncio.create_task(self.ingest.run())
    self._ingest_task.set_name(f"ingest_{self.session_id}")

    self._dispatch_task = asyncio.create_task(self.dispatch.run())
    self._dispatch_task.set_name(f"dispatch_{self.session_id}")

    self._supervisor_task = asyncio.create_task(self._supervise())
    self._supervisor_task.set_name(f"session_{self.session_id}")

    self.logger.info("Session started", language=self.language)

  def _emit(self, event: RelayEvent) -> None:
    # Nothing reaches listeners once the caller has stopped the session
    if self.stopping:
      return
    self._emit_event(event)

  async def _supervise(self) -> None:
    assert self._ingest_task is not None and self._dispatch_task is not None

    done, _ = await asyncio.wait(
      [self._ingest_task, self._dispatch_task], return_when=asyncio.FIRST_COMPLETED
    )

    if self._dispatch_task in done:
      # The connection is gone; stop accepting audio
      self.queue.abandon()
    elif _task_outcome(self._ingest_task) is not None:
      # A write failed; one best-effort close so the receive half ends too
      await self._close_channel()

    await asyncio.gather(self._ingest_task, self._dispatch_task, return_exceptions=True)

    failure = next(
      (
        outcome
        for outcome in map(_task_outcome, (self._ingest_task, self._dispatch_task))
        if isinstance(outcome, Exception)
      ),
      None,
    )

    await self.sender.stop()
    await self._close_channel()
    try:
      await self.channel.source.aclose()
    except Exception:
      self.logger.exception("Error releasing upstream receive half")

    self.queue.abandon()
    self.defunct = True

    if failure is not None:
      self.failure = failure
      if not self.stopping:
        self.logger.error("Session failed", error=str(failure), error_type=type(failure).__name__)
        self._emit_event(SessionErrorEvent(session_id=self.session_id, message=str(failure)))

    self.logger.info(
      "Session closed",
      frames_forwarded=self.ingest.frames_forwarded,
      results_accepted=self.dispatch.results_accepted,
      failed=failure is not None,
    )

  async def _close_channel(self) -> None:
    if self._channel_closed:
      return
    self._channel_closed = True
    try:
      await self.channel.sink.aclose()
    except Exception:
      self.logger.exception("Error closing upstream connection")

  async def shutdown(self, timeout: float | None = None) -> None:
    """
    Stop the session at the caller's request.

    Closes the ingest queue so queued audio is forwarded and the close frame is sent, then waits
    for the relays. Relays still running after ``timeout`` seconds are cancelled.

    :param timeout: Drain deadline; ``config.shutdown_timeout`` by default.
    """
    self.stopping = True
    self.queue.close()

    if self._supervisor_task is None:
      await self._close_channel()
      self.defunct = True
      return

    timeout = timeout if timeout is not None else self.config.shutdown_timeout
    try:
      await asyncio.wait_for(asyncio.shield(self._supervisor_task), timeout)
    except TimeoutError:
      self.logger.warning("Session did not drain in time, cancelling relays", timeout=timeout)
      for task in (self._ingest_task, self._dispatch_task):
        if task is not None and not task.done():
          task.cancel()
      await self._close_channel()
      await self._supervisor_task

  async def wait_closed(self) -> None:
    """Wait until both relays have ended and the connection is closed."""
    if self._supervisor_task is not None:
      await asyncio.shield(self._supervisor_task)

  def status(self) -> SessionStatusDict:
    """Get status information for this session."""
    return {
      "language": self.language,
      "uptime": time.time() - self.started_at,
      "queue_depth": self.queue.qsize(),
      "frames_enqueued": self.queue.frames_enqueued,
      "frames_forwarded": self.ingest.frames_forwarded,
      "bytes_sent": self.sender.bytes_sent,
      "results_accepted": self.dispatch.results_accepted,
      "duplicates_suppressed": self.dispatch.duplicates_suppressed,
      "messages_skipped": self.dispatch.messages_skipped,
      "keepalives_answered": self.dispatch.keepalives_answered,
      "stopping": self.stopping,
      "defunct": self.defunct,
      "failure": str(self.failure) if self.failure is not None else None,
    }
