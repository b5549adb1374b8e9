from collections.abc import Callable

from overhear.errors import DecodeError, TransportError
from overhear.logs import get_logger
from overhear.relay.channel import FrameSource
from overhear.relay.filter import FilterOutcome, TranscriptFilter
from overhear.relay.keepalive import respond_to_ping
from overhear.relay.sender import SendActor
from overhear.wire import CloseFrame, PingFrame, TextFrame, TranscriptEvent, decode_result


class DispatchRelay:
  """
  Reads one session's upstream frames and turns result messages into transcript events.

  Frame handling:
    - Text: decoded as a result message, filtered, and emitted. Malformed messages are logged
      and skipped; they never end the relay.
    - Ping: answered through the keepalive responder.
    - Close: ends the relay without error.
    - Binary, pong: ignored.

  A transport failure ends the relay and is returned to the session supervisor.
  """

  def __init__(
    self,
    session_id: str,
    source: FrameSource,
    sender: SendActor,
    emit: Callable[[TranscriptEvent], None],
    transcript_filter: TranscriptFilter | None = None,
  ) -> None:
    """
    Initialize the dispatch relay.

    :param session_id: Session the relay belongs to.
    :param source: Receive half of the session's upstream connection.
    :param sender: Send actor used for keepalive replies.
    :param emit: Callback receiving every accepted transcript event.
    :param transcript_filter: Dedup state for the session; a fresh one by default.
    """
    self.session_id = session_id
    self.source = source
    self.sender = sender
    self.emit = emit
    self.filter = transcript_filter or TranscriptFilter()
    self.logger = get_logger("relay/dispatch", session=session_id)

    # Statistics
    self.frames_received = 0
    self.results_accepted = 0
    self.duplicates_suppressed = 0
    self.messages_skipped = 0
    self.keepalives_answered = 0

  async def run(self) -> TransportError | None:
    """
    Consume the receive half until it closes or fails.

    :returns: The transport failure that ended the relay, or None on a clean close.
    """
    self.logger.debug("Dispatch relay started")

    try:
      async for frame in self.source:
        self.frames_received += 1

        match frame:
          case TextFrame(text=text):
            self._handle_text(text)

          case PingFrame(payload=payload):
            if await respond_to_ping(payload, self.sender, self.logger):
              self.keepalives_answered += 1

          case CloseFrame(code=code, reason=reason):
            self.logger.info(
              "Upstream connection closed",
              code=code,
              reason=reason or None,
              results_accepted=self.results_accepted,
            )
            return None

          case _:
            continue

    except TransportError as e:
      self.logger.error("Upstream receive failed", error=str(e))
      return e

    self.logger.info("Upstream stream ended", results_accepted=self.results_accepted)
    return None

  def _handle_text(self, text: str) -> None:
    try:
      result = decode_result(text)
    except DecodeError as e:
      self.messages_skipped += 1
      self.logger.warning("Skipping malformed upstream message", error=str(e))
      return

    # Metadata and speech events carry no transcript
    if result is None:
      return

    outcome, transcript = self.filter.check(result)
    match outcome:
      case FilterOutcome.EMPTY:
        return
      case FilterOutcome.DUPLICATE:
        self.duplicates_suppressed += 1
        self.logger.debug("Suppressed repeated final result", text=transcript)
        return

    self.results_accepted += 1
    self.emit(
      TranscriptEvent(session_id=self.session_id, is_final=result.is_final, text=transcript)
    )
