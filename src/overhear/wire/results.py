"""
Pydantic models for the JSON result messages streamed by the recognition service.

Only the fields the relay reads are modelled; everything else in the payload is ignored.
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from overhear.errors import DecodeError


class Alternative(BaseModel):
  """One recognition hypothesis for the audio window."""

  model_config = ConfigDict(extra="ignore")

  transcript: str | None = None
  """Recognised text. Empty while the service has heard no speech."""


class Channel(BaseModel):
  """Per-audio-channel results."""

  model_config = ConfigDict(extra="ignore")

  alternatives: list[Alternative] = Field(default_factory=list)


class ResultMessage(BaseModel):
  """
  A streamed result message.

  Results look like ``{"channel": {"alternatives": [{"transcript": ...}]}, "is_final": ...}``.
  The same socket also carries metadata and speech-event messages, which have no ``channel``.
  """

  model_config = ConfigDict(extra="ignore")

  channel: Channel | None = None

  is_final: bool = False
  """Whether the service has settled the text for this utterance window."""

  @field_validator("is_final", mode="before")
  @classmethod
  def only_json_booleans(cls, value):
    # "true", 1 and null all count as not final
    return value if isinstance(value, bool) else False


class TranscriptResult(BaseModel):
  """A decoded recognition result, consumed once by the transcript filter."""

  text: str
  is_final: bool = False


def decode_result(message_json: str | bytes) -> TranscriptResult | None:
  """
  Decode one upstream text message.

  :param message_json: The raw JSON text of the message.
  :returns: The decoded result, or None when the message is valid but carries no transcript.
  :raises DecodeError: If the message is not JSON or has the wrong shape.
  """
  try:
    message = ResultMessage.model_validate_json(message_json)
  except ValidationError as e:
    raise DecodeError(f"Malformed result message: {e.error_count()} error(s)") from e

  if message.channel is None or not message.channel.alternatives:
    return None

  transcript = message.channel.alternatives[0].transcript
  if transcript is None:
    return None

  return TranscriptResult(text=transcript, is_final=message.is_final)
