"""
Invocation layer for the transcription relay.

``TranscriptionService`` is what a host application calls: it holds the credential and the
configuration, and forwards start/push/stop requests to the session registry.
"""

from overhear.config import OverhearConfig
from overhear.errors import MissingCredentialError
from overhear.logs import get_logger
from overhear.relay import Connector, SessionRegistry, UpstreamConnector
from overhear.relay.registry import RegistryStatusDict
from overhear.sink import BroadcastSink


class TranscriptionService:
  """Starts, feeds and stops transcription sessions for a host application."""

  def __init__(
    self,
    config: OverhearConfig,
    credential: str | None,
    sink: BroadcastSink,
    connector: Connector | None = None,
  ) -> None:
    """
    Initialize the service.

    :param config: Validated configuration.
    :param credential: Bearer credential for the recognition service.
    :param sink: Receives every event emitted by every session.
    :param connector: Opens upstream connections; the websockets connector by default.
    :raises MissingCredentialError: If no credential is given.
    """
    if not credential:
      raise MissingCredentialError("A credential for the recognition service is required")

    self.config = config
    self.sink = sink
    self._credential = credential
    self.connector = connector or UpstreamConnector(config.upstream)
    self.registry = SessionRegistry(self.connector, sink.emit, config.session)
    self.logger = get_logger("service")

  async def start(self, session_id: str, language: str | None = None) -> None:
    """
    Start a session.

    :param session_id: Caller-chosen unique id.
    :param language: Recognition language; the configured default when omitted.
    :raises SessionAlreadyActive: If the id is already in use.
    :raises UpstreamConnectionError: If the upstream connection cannot be established.
    """
    await self.registry.create(
      session_id, language or self.config.default_language, self._credential
    )

  async def push_audio(self, session_id: str, frame: bytes) -> None:
    """
    Queue one chunk of audio for a session.

    :raises InvalidSession: If the id is not registered.
    :raises ChannelClosed: If the session's connection has ended.
    """
    await self.registry.forward(session_id, frame)

  async def stop(self, session_id: str) -> None:
    """
    Stop a session, forwarding any audio still queued.

    :raises SessionNotFound: If the id is not registered.
    """
    await self.registry.destroy(session_id)

  async def shutdown(self) -> None:
    """Stop every session."""
    self.logger.info("Shutting down transcription service")
    await self.registry.destroy_all()

  def status(self) -> RegistryStatusDict:
    """Get status information for all sessions."""
    return self.registry.get_session_status()
