"""Real-time transcription relay between local audio producers and a recognition service."""

from overhear.config import OverhearConfig, SessionConfig, UpstreamConfig, load_config_from_file
from overhear.errors import (
  ChannelClosed,
  InvalidSession,
  MissingCredentialError,
  RelayError,
  SessionAlreadyActive,
  SessionNotFound,
  UpstreamConnectionError,
)
from overhear.service import TranscriptionService
from overhear.sink import BroadcastSink
from overhear.wire import SessionErrorEvent, TranscriptEvent

__version__ = "0.1.0"

__all__ = [
  "BroadcastSink",
  "ChannelClosed",
  "InvalidSession",
  "MissingCredentialError",
  "OverhearConfig",
  "RelayError",
  "SessionAlreadyActive",
  "SessionConfig",
  "SessionErrorEvent",
  "SessionNotFound",
  "TranscriptEvent",
  "TranscriptionService",
  "UpstreamConfig",
  "UpstreamConnectionError",
  "load_config_from_file",
]
