"""
Per-session relaying between audio producers and the streaming recognition service.

Each session owns one upstream connection split into a send half, written only by its
``SendActor``, and a receive half, read only by its ``DispatchRelay``.
"""

from overhear.relay.channel import Connector, FrameSink, FrameSource, UpstreamChannel
from overhear.relay.connector import (
  UpstreamConnection,
  UpstreamConnector,
  UpstreamProtocol,
  WebSocketFrameSink,
  WebSocketFrameSource,
)
from overhear.relay.dispatch import DispatchRelay
from overhear.relay.filter import FilterOutcome, TranscriptFilter
from overhear.relay.ingest import IngestQueue, IngestRelay
from overhear.relay.keepalive import respond_to_ping
from overhear.relay.registry import SessionRegistry
from overhear.relay.sender import SendActor
from overhear.relay.session import RelaySession

__all__ = [
  "Connector",
  "DispatchRelay",
  "FilterOutcome",
  "FrameSink",
  "FrameSource",
  "IngestQueue",
  "IngestRelay",
  "RelaySession",
  "SendActor",
  "SessionRegistry",
  "TranscriptFilter",
  "UpstreamChannel",
  "UpstreamConnection",
  "UpstreamConnector",
  "UpstreamProtocol",
  "WebSocketFrameSink",
  "WebSocketFrameSource",
  "respond_to_ping",
]
