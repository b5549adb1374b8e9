"""
Event payloads delivered to the local event sink.

Payloads serialise with camelCase keys (``isFinal``, ``sessionId``) to match what the desktop
frontend listens for.
"""

from typing import Literal, TypeAlias

from pydantic import BaseModel, Field, TypeAdapter


class TranscriptEvent(BaseModel):
  """An accepted transcript result for one session."""

  type: Literal["transcript"] = "transcript"
  session_id: str = Field(serialization_alias="sessionId")
  is_final: bool = Field(serialization_alias="isFinal")
  text: str


class SessionErrorEvent(BaseModel):
  """Terminal notification for a session whose upstream connection failed mid-stream."""

  type: Literal["session_error"] = "session_error"
  session_id: str = Field(serialization_alias="sessionId")
  message: str


RelayEvent: TypeAlias = TranscriptEvent | SessionErrorEvent


def serialize_event(event: RelayEvent) -> str:
  """Serialise an event to its JSON wire form."""
  adapter = TypeAdapter(type(event))
  return adapter.dump_json(event, by_alias=True).decode("utf-8")
