"""
Single-owner writer for a session's send half.

Both the ingest relay (audio frames, the close frame) and the keepalive responder (pongs) need to
write to the same connection. Rather than sharing the connection behind a lock, the send half is
owned by one task that performs queued send requests one at a time; each request is a complete
frame and is finished before the next one starts.
"""

import asyncio
import contextlib
import itertools
from dataclasses import dataclass

from overhear.errors import SendError
from overhear.logs import get_logger
from overhear.relay.channel import FrameSink
from overhear.wire import BinaryFrame, CloseFrame, OutboundFrame, PongFrame

# Pongs jump ahead of queued audio. Audio and the close frame keep FIFO order among themselves.
_CONTROL_PRIORITY = 0
_DATA_PRIORITY = 1


@dataclass
class _SendRequest:
  frame: OutboundFrame
  future: asyncio.Future[None]


class SendActor:
  """
  Serialises writes to one upstream send half.

  Once a write fails the actor is poisoned: the failed request and every later request raise
  ``SendError``. Once the close frame has been queued, further requests are refused.
  """

  def __init__(self, sink: FrameSink, session_id: str) -> None:
    self.sink = sink
    self.session_id = session_id
    self.logger = get_logger("relay/send", session=session_id)

    self._requests: asyncio.PriorityQueue[tuple[int, int, _SendRequest]] = asyncio.PriorityQueue()
    self._sequence = itertools.count()
    self._task: asyncio.Task | None = None
    self._current: _SendRequest | None = None
    self._failure: SendError | None = None
    self._closing = False

    # Statistics
    self.frames_sent = 0
    self.bytes_sent = 0

  @property
  def failed(self) -> bool:
    return self._failure is not None

  def start(self) -> asyncio.Task:
    """Start the actor task."""
    self._task = asyncio.create_task(self._run())
    self._task.set_name(f"send_{self.session_id}")
    return self._task

  async def send(self, frame: OutboundFrame) -> None:
    """
    Queue one frame and wait until it has been written.

    :param frame: The frame to write.
    :raises SendError: If the connection has failed, is closing, or the write itself fails.
    """
    if self._failure is not None:
      raise SendError(f"Upstream send half has failed: {self._failure}") from self._failure
    if self._closing:
      raise SendError("Upstream connection is closing")

    if isinstance(frame, CloseFrame):
      self._closing = True

    priority = _CONTROL_PRIORITY if isinstance(frame, PongFrame) else _DATA_PRIORITY
    future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
    self._requests.put_nowait((priority, next(self._sequence), _SendRequest(frame, future)))
    await future

  async def _run(self) -> None:
    while True:
      _, _, request = await self._requests.get()

      # The caller was cancelled before its turn came
      if request.future.done():
        continue

      if self._failure is not None:
        request.future.set_exception(SendError(f"Upstream send half has failed: {self._failure}"))
        continue

      # Left set on cancellation so stop() can fail the in-flight request
      self._current = request
      try:
        await self.sink.send(request.frame)
      except Exception as e:
        self._current = None
        failure = e if isinstance(e, SendError) else SendError(f"Upstream write failed: {e}")
        if failure is not e:
          failure.__cause__ = e
        self._failure = failure
        self.logger.error("Upstream write failed", frame=type(request.frame).__name__, error=str(e))
        if not request.future.done():
          request.future.set_exception(failure)
        continue

      self._current = None
      self.frames_sent += 1
      if isinstance(request.frame, BinaryFrame):
        self.bytes_sent += len(request.frame.payload)
      if not request.future.done():
        request.future.set_result(None)

  async def stop(self) -> None:
    """Stop the actor and fail any request that has not been written."""
    self._closing = True

    if self._task is not None and not self._task.done():
      self._task.cancel()
      with contextlib.suppress(asyncio.CancelledError):
        await self._task

    pending = [self._current] if self._current is not None else []
    while not self._requests.empty():
      _, _, request = self._requests.get_nowait()
      pending.append(request)

    for request in pending:
      if not request.future.done():
        request.future.set_exception(SendError("Upstream sender stopped"))

    self._current = None
