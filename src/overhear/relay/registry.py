import asyncio
from collections.abc import Callable
from typing import TypedDict

from overhear.config import SessionConfig
from overhear.errors import (
  InvalidSession,
  SessionAlreadyActive,
  SessionNotFound,
  UpstreamConnectionError,
)
from overhear.logs import get_logger
from overhear.relay.channel import Connector, UpstreamChannel
from overhear.relay.ingest import IngestQueue
from overhear.relay.session import RelaySession, SessionStatusDict
from overhear.wire import RelayEvent


class RegistrySummaryDict(TypedDict):
  """Summary statistics for all sessions."""

  total_created: int
  active_sessions: int
  defunct_sessions: int
  failed_connections: int


class RegistryStatusDict(TypedDict):
  """Complete status information for the session registry."""

  summary: RegistrySummaryDict
  sessions: dict[str, SessionStatusDict]


class SessionRegistry:
  """
  Registry of live transcription sessions.

  Owns session creation (exactly once per id) and teardown. A session id is reserved before its
  upstream connection is opened, so a second ``create`` for the same id is rejected even while the
  first handshake is still in flight, and handshakes for different ids run concurrently.

  Sessions whose connection dies on its own stay registered as defunct until ``destroy``; pushing
  audio to them raises ``ChannelClosed`` rather than ``InvalidSession``.
  """

  def __init__(
    self,
    connector: Connector,
    emit: Callable[[RelayEvent], None],
    config: SessionConfig | None = None,
  ):
    """
    Initialize the session registry.

    :param
        connector: Opens upstream connections for new sessions
        emit: Event sink callback shared by all sessions
        config: Per-session relay configuration
    """
    self.connector = connector
    self.emit = emit
    self.config = config or SessionConfig()
    self.sessions: dict[str, RelaySession] = {}
    self._reserved: set[str] = set()
    self._lock = asyncio.Lock()
    self.logger = get_logger("relay/registry")

    # Statistics
    self.total_sessions_created = 0
    self.failed_connections = 0

  async def create(self, session_id: str, language: str, credential: str) -> IngestQueue:
    """
    Open a session and start relaying.

    :param
        session_id: Caller-chosen unique session id
        language: Recognition language code
        credential: Bearer credential for the recognition service

    :returns:
        The session's ingest queue, the handle for pushing audio frames

    :raises
        SessionAlreadyActive: If the id is registered or being established
        UpstreamConnectionError: If the upstream handshake fails; nothing is registered
    """
    async with self._lock:
      if session_id in self.sessions or session_id in self._reserved:
        self.logger.warning("Session already active", session=session_id)
        raise SessionAlreadyActive(session_id)
      self._reserved.add(session_id)

    try:
      self.logger.info("Creating session", session=session_id, language=language)
      try:
        channel = await self.connector.connect(language, credential)
      except UpstreamConnectionError as e:
        self.failed_connections += 1
        self.logger.error("Upstream connection failed", session=session_id, error=str(e))
        raise

      session: RelaySession | None = None
      try:
        session = RelaySession(session_id, language, channel, self.emit, self.config)
        async with self._lock:
          self.sessions[session_id] = session
        session.start()
      except BaseException:
        # Includes cancellation while waiting for the lock; no relay owns the connection yet
        if session is not None and self.sessions.get(session_id) is session:
          del self.sessions[session_id]
        await self._discard_channel(session_id, channel)
        raise

      self.total_sessions_created += 1
      self.logger.info(
        "Session created", session=session_id, active_sessions=len(self.sessions)
      )
      return session.queue

    finally:
      self._reserved.discard(session_id)

  async def _discard_channel(self, session_id: str, channel: UpstreamChannel) -> None:
    self.logger.warning("Session setup aborted, closing upstream connection", session=session_id)
    for close in (channel.sink.aclose, channel.source.aclose):
      try:
        await close()
      except Exception:
        self.logger.exception("Error closing upstream connection", session=session_id)

  async def forward(self, session_id: str, frame: bytes) -> None:
    """
    Queue one audio frame for a session, waiting while its queue is full.

    :raises
        InvalidSession: If the id is not registered
        ChannelClosed: If the session's connection has already ended
    """
    session = self.sessions.get(session_id)
    if session is None:
      raise InvalidSession(session_id)

    await session.queue.push(frame)

  async def destroy(self, session_id: str) -> None:
    """
    Remove a session and shut it down.

    Queued audio is still forwarded and the close frame sent; no further events are emitted for
    the session.

    :raises
        SessionNotFound: If the id is not registered
    """
    async with self._lock:
      session = self.sessions.pop(session_id, None)

    if session is None:
      self.logger.warning("Session not found for removal", session=session_id)
      raise SessionNotFound(session_id)

    self.logger.info("Removing session", session=session_id, defunct=session.defunct)
    await session.shutdown()
    self.logger.info(
      "Session removed successfully", session=session_id, active_sessions=len(self.sessions)
    )

  async def destroy_all(self) -> None:
    """
    Shut every session down concurrently.

    Used during process shutdown.
    """
    async with self._lock:
      sessions = list(self.sessions.values())
      self.sessions.clear()

    if not sessions:
      self.logger.debug("No sessions to stop")
      return

    self.logger.info("Stopping all sessions", active_sessions=len(sessions))
    results = await asyncio.gather(
      *(session.shutdown() for session in sessions), return_exceptions=True
    )
    for session, result in zip(sessions, results):
      if isinstance(result, Exception):
        self.logger.error(
          "Error stopping session", session=session.session_id, error=str(result)
        )

    self.logger.info("All sessions stopped")

  def get_session_status(self) -> RegistryStatusDict:
    """
    Get status information for all sessions.

    :returns:
        Dictionary with per-session status and summary counters
    """
    return {
      "summary": {
        "total_created": self.total_sessions_created,
        "active_sessions": sum(1 for s in self.sessions.values() if not s.defunct),
        "defunct_sessions": sum(1 for s in self.sessions.values() if s.defunct),
        "failed_connections": self.failed_connections,
      },
      "sessions": {
        session_id: session.status() for session_id, session in self.sessions.items()
      },
    }

  def get_active_session_ids(self) -> list[str]:
    """Get list of registered session ids."""
    return list(self.sessions.keys())

  def get_session_count(self) -> int:
    """Get count of registered sessions."""
    return len(self.sessions)
