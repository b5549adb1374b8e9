"""
Result filtering for one session.

The recognition service re-sends a settled utterance now and then; only the first copy of a final
result is passed on. Interim results change from frame to frame and are always passed on, since
listeners treat each interim as superseding the previous one.
"""

from enum import StrEnum

from overhear.wire import TranscriptResult


class FilterOutcome(StrEnum):
  """What the filter decided for one result."""

  ACCEPTED = "accepted"
  EMPTY = "empty"
  DUPLICATE = "duplicate"


class TranscriptFilter:
  """
  Drops empty results and immediate repeats of the previous final result.

  Only the immediately preceding final result is remembered: a final that repeats an older one is
  accepted again.
  """

  def __init__(self) -> None:
    self.last_final = ""

  def check(self, result: TranscriptResult) -> tuple[FilterOutcome, str]:
    """
    Decide whether a result should be emitted.

    :param result: The decoded result.
    :returns: The outcome and the trimmed transcript text.
    """
    text = result.text.strip()
    if not text:
      return FilterOutcome.EMPTY, text

    if result.is_final:
      if text == self.last_final:
        return FilterOutcome.DUPLICATE, text
      self.last_final = text

    return FilterOutcome.ACCEPTED, text

