"""
Exception hierarchy for the transcription relay.

Session lookup failures, upstream connection failures and in-flight transport failures are kept
distinct so callers can tell a session that never existed from one that died asynchronously.
"""


class RelayError(Exception):
  """Base class for every error raised by the relay."""


class SessionAlreadyActive(RelayError):
  """A session with the requested id is already registered (or being established)."""

  def __init__(self, session_id: str):
    super().__init__(f"Session already active: {session_id}")
    self.session_id = session_id


class UnknownSessionError(RelayError):
  """The requested session id is not registered."""

  def __init__(self, session_id: str, message: str):
    super().__init__(f"{message}: {session_id}")
    self.session_id = session_id


class InvalidSession(UnknownSessionError):
  """Audio was pushed to a session id that is not registered."""

  def __init__(self, session_id: str):
    super().__init__(session_id, "Invalid session")


class SessionNotFound(UnknownSessionError):
  """A session id that is not registered was asked to stop."""

  def __init__(self, session_id: str):
    super().__init__(session_id, "Session not found")


class UpstreamConnectionError(RelayError):
  """The streaming connection to the recognition service could not be established."""


class ChannelClosed(RelayError):
  """The session was valid but its ingest channel has closed."""

  def __init__(self, session_id: str | None = None):
    message = "Send failed or session closed"
    super().__init__(f"{message}: {session_id}" if session_id else message)
    self.session_id = session_id


class DecodeError(RelayError):
  """An inbound upstream message could not be decoded."""


class TransportError(RelayError):
  """The upstream connection failed after it was established."""


class SendError(TransportError):
  """A write on the upstream send half failed or was refused."""


class MissingCredentialError(RelayError):
  """No credential is available for the recognition service."""
