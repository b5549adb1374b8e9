"""
overhear wire types.

Frames exchanged with the recognition service, the result messages it streams, and the events
handed to local listeners.
"""

from .events import RelayEvent, SessionErrorEvent, TranscriptEvent, serialize_event
from .frames import (
  BinaryFrame,
  CloseFrame,
  InboundFrame,
  OutboundFrame,
  PingFrame,
  PongFrame,
  TextFrame,
)
from .results import ResultMessage, TranscriptResult, decode_result

__all__ = [
  "BinaryFrame",
  "CloseFrame",
  "InboundFrame",
  "OutboundFrame",
  "PingFrame",
  "PongFrame",
  "RelayEvent",
  "ResultMessage",
  "SessionErrorEvent",
  "TextFrame",
  "TranscriptEvent",
  "TranscriptResult",
  "decode_result",
  "serialize_event",
]
