import asyncio

from overhear.errors import ChannelClosed, SendError
from overhear.logs import get_logger
from overhear.relay.sender import SendActor
from overhear.wire import BinaryFrame, CloseFrame


class IngestQueue(asyncio.Queue):
  """
  Bounded, closable queue of audio frames for one session.

  This is the producer-facing handle of a session. Producers are suspended while the queue is full.
  The queue can be closed from either end:

  - ``close()`` by the producer side: frames already queued are still forwarded, then the relay
    sends the close frame.
  - ``abandon()`` by the consumer side when the connection has died: queued frames are discarded,
    suspended producers are released, and every later ``push`` raises ``ChannelClosed``.
  """

  def __init__(self, session_id: str, maxsize: int) -> None:
    super().__init__(maxsize)
    self.session_id = session_id
    self._closed = False
    self._abandoned = False
    self.frames_enqueued = 0

  @property
  def closed(self) -> bool:
    return self._closed

  @property
  def abandoned(self) -> bool:
    return self._abandoned

  async def push(self, frame: bytes) -> None:
    """
    Enqueue one audio frame, waiting for room if the queue is full.

    :raises ChannelClosed: If the queue is closed, or the relay exits while this call waits.
    """
    if self._closed:
      raise ChannelClosed(self.session_id)

    await self.put(frame)

    if self._abandoned:
      # Nobody will consume this frame; make room so the next suspended producer wakes too
      self._discard()
      raise ChannelClosed(self.session_id)
    self.frames_enqueued += 1

  async def next_frame(self) -> bytes | None:
    """Wait for the next frame. Returns None once the queue is closed and drained."""
    if self._abandoned or (self._closed and self.empty()):
      return None
    frame = await self.get()
    if self._abandoned:
      return None
    return frame

  def close(self) -> None:
    """Signal that no more frames will be pushed."""
    if self._closed:
      return
    self._closed = True
    # A full queue needs no sentinel: the consumer sees the closed flag once it has drained it
    if not self.full():
      self.put_nowait(None)

  def abandon(self) -> None:
    """Discard queued frames and refuse further ones."""
    if self._abandoned:
      return
    was_empty = self.empty()
    self._closed = True
    self._abandoned = True
    self._discard()
    # Only an empty queue can have a consumer blocked on it
    if was_empty:
      self.put_nowait(None)

  def _discard(self) -> None:
    while not self.empty():
      self.get_nowait()


class IngestRelay:
  """
  Forwards one session's audio frames upstream, in enqueue order.

  Runs until the ingest queue is closed (then sends the close frame) or a write fails (then stops
  without touching the failed connection again; the session closes it).
  """

  def __init__(self, session_id: str, queue: IngestQueue, sender: SendActor) -> None:
    self.session_id = session_id
    self.queue = queue
    self.sender = sender
    self.logger = get_logger("relay/ingest", session=session_id)
    self.frames_forwarded = 0

  async def run(self) -> SendError | None:
    """
    Drain the queue into the send half.

    :returns: The write failure that ended the relay, or None if it ended gracefully.
    """
    self.logger.debug("Ingest relay started")

    while (frame := await self.queue.next_frame()) is not None:
      try:
        await self.sender.send(BinaryFrame(frame))
      except SendError as e:
        self.logger.error(
          "Audio forwarding failed", error=str(e), frames_forwarded=self.frames_forwarded
        )
        self.queue.abandon()
        return e
      self.frames_forwarded += 1

    try:
      await self.sender.send(CloseFrame())
    except SendError as e:
      self.logger.debug("Close frame not sent", error=str(e))

    self.logger.info("Ingest relay finished", frames_forwarded=self.frames_forwarded)
    return None
