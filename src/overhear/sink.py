"""
Fan-out of relay events to local listeners.

Listeners are either callbacks, invoked synchronously on the event loop, or subscriber queues
that a consumer drains at its own pace.
"""

import asyncio
from collections.abc import Callable

from overhear.logs import get_logger
from overhear.wire import RelayEvent

EventListener = Callable[[RelayEvent], None]


class BroadcastSink:
  """
  Delivers every emitted event to all current listeners.

  Events are not routed: each listener sees the events of every session and can filter on
  ``session_id``. A failing callback is logged and skipped; the remaining listeners still
  receive the event.
  """

  def __init__(self) -> None:
    self.listeners: list[EventListener] = []
    self.subscribers: list[asyncio.Queue[RelayEvent]] = []
    self.logger = get_logger("sink")

    # Statistics
    self.events_emitted = 0
    self.listener_errors = 0
    self.events_dropped = 0

  def add_listener(self, listener: EventListener) -> None:
    """Register a callback invoked with every event."""
    self.listeners.append(listener)

  def remove_listener(self, listener: EventListener) -> None:
    """Unregister a callback. Unknown callbacks are ignored."""
    if listener in self.listeners:
      self.listeners.remove(listener)

  def subscribe(self, maxsize: int = 0) -> asyncio.Queue[RelayEvent]:
    """
    Register a new subscriber queue.

    With the default ``maxsize`` the queue is unbounded and grows for as long as its consumer does
    not drain it. A bounded queue drops new events while it is full.

    :param maxsize: Queue capacity; 0 means unbounded.
    :returns: A queue receiving every event emitted from now on.
    """
    queue: asyncio.Queue[RelayEvent] = asyncio.Queue(maxsize=maxsize)
    self.subscribers.append(queue)
    return queue

  def unsubscribe(self, queue: asyncio.Queue[RelayEvent]) -> None:
    """Unregister a subscriber queue. Unknown queues are ignored."""
    if queue in self.subscribers:
      self.subscribers.remove(queue)

  def emit(self, event: RelayEvent) -> None:
    """Deliver one event to every listener and subscriber."""
    self.events_emitted += 1

    for listener in list(self.listeners):
      try:
        listener(event)
      except Exception:
        self.listener_errors += 1
        self.logger.exception(
          "Event listener failed", session=event.session_id, event_type=event.type
        )

    for queue in self.subscribers:
      try:
        queue.put_nowait(event)
      except asyncio.QueueFull:
        self.events_dropped += 1
        self.logger.warning(
          "Subscriber queue full, dropping event", session=event.session_id, event_type=event.type
        )
