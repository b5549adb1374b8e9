from structlog.stdlib import BoundLogger

from overhear.errors import SendError
from overhear.relay.sender import SendActor
from overhear.wire import PongFrame


async def respond_to_ping(payload: bytes, sender: SendActor, logger: BoundLogger) -> bool:
  """
  Answer one liveness probe with a pong carrying the same payload.

  A failed reply is logged and reported through the return value; it never interrupts the caller.

  :param payload: The payload of the received ping.
  :param sender: The session's send actor.
  :param logger: Logger bound to the session.
  :returns: True if the pong was written.
  """
  try:
    await sender.send(PongFrame(payload))
  except SendError as e:
    logger.warning("Keepalive reply failed", error=str(e), payload_size=len(payload))
    return False

  logger.debug("Answered keepalive probe", payload_size=len(payload))
  return True
