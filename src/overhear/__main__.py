import argparse
import asyncio
import os
import sys
from typing import BinaryIO

from overhear.config import (
  CREDENTIAL_ENV_VAR,
  OverhearConfig,
  get_env_or_default,
  load_config_from_file,
  load_credential,
  load_env_file,
)
from overhear.errors import ChannelClosed, UpstreamConnectionError
from overhear.logs import get_logger, setup_logging
from overhear.service import TranscriptionService
from overhear.sink import BroadcastSink
from overhear.wire import RelayEvent, SessionErrorEvent, serialize_event


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    prog="overhear",
    description="Stream an audio file to the recognition service and print transcript events "
    "as JSON lines.",
  )
  parser.add_argument(
    "input",
    nargs="?",
    default="-",
    help="Audio file to stream. Reads standard input when omitted or '-'.",
  )
  parser.add_argument(
    "--config",
    type=str,
    default=get_env_or_default("OVERHEAR_CONFIG", None),
    help="Path to the configuration file. (Env: OVERHEAR_CONFIG)",
  )
  parser.add_argument(
    "--language",
    type=str,
    default=get_env_or_default("OVERHEAR_LANGUAGE", None),
    help="Recognition language code. Defaults to the configured default_language. "
    "(Env: OVERHEAR_LANGUAGE)",
  )
  parser.add_argument(
    "--session_id",
    type=str,
    default="cli",
    help="Session id attached to every emitted event.",
  )
  parser.add_argument(
    "--chunk_size",
    type=int,
    default=get_env_or_default("OVERHEAR_CHUNK_SIZE", 8192, int),
    help="Bytes per audio frame pushed upstream. (Env: OVERHEAR_CHUNK_SIZE)",
  )
  parser.add_argument(
    "--chunk_interval",
    type=float,
    default=get_env_or_default("OVERHEAR_CHUNK_INTERVAL", 0.0, float),
    help="Seconds to wait between frames, to pace a file like a live source. "
    "(Env: OVERHEAR_CHUNK_INTERVAL)",
  )
  parser.add_argument(
    "--linger",
    type=float,
    default=2.0,
    help="Seconds to keep listening for trailing results after the input ends.",
  )
  parser.add_argument(
    "--json_logs",
    action="store_true",
    default=get_env_or_default("JSON_LOGS", False, bool),
    help="Output logs in JSON format. (Env: JSON_LOGS)",
  )
  parser.add_argument(
    "--correlation_id",
    type=str,
    default=get_env_or_default("CORRELATION_ID", None),
    help="Correlation ID for log tracing. (Env: CORRELATION_ID)",
  )
  return parser


async def stream_input(
  service: TranscriptionService,
  session_id: str,
  stream: BinaryIO,
  chunk_size: int,
  chunk_interval: float,
) -> int:
  """Push the stream to the session chunk by chunk. Returns the number of chunks pushed."""
  chunks = 0
  while chunk := await asyncio.to_thread(stream.read, chunk_size):
    await service.push_audio(session_id, chunk)
    chunks += 1
    if chunk_interval > 0:
      await asyncio.sleep(chunk_interval)
  return chunks


async def main() -> int:
  # .env values feed the flag defaults below as well as the credential
  env_file = load_env_file()
  parser = build_parser()
  args = parser.parse_args()

  if args.chunk_size <= 0:
    parser.error("--chunk_size must be positive")
  if args.chunk_interval < 0 or args.linger < 0:
    parser.error("--chunk_interval and --linger must not be negative")
  if args.input != "-" and not os.path.isfile(args.input):
    parser.error(f"Input file not found: {args.input}")

  log_level = os.getenv("LOG_LEVEL", "INFO").upper()
  setup_logging(level=log_level, json_output=args.json_logs, correlation_id=args.correlation_id)
  logger = get_logger("main")
  if env_file:
    logger.debug("Loaded environment file", path=env_file)

  if args.config:
    try:
      config = load_config_from_file(args.config)
    except ValueError as e:
      parser.error(f"Invalid configuration: {e}")
  else:
    config = OverhearConfig()

  credential = load_credential()
  if credential is None:
    parser.error(
      f"No credential found. Set the {CREDENTIAL_ENV_VAR} environment variable "
      "or add it to a .env file."
    )

  session_errors: list[SessionErrorEvent] = []

  def print_event(event: RelayEvent) -> None:
    if isinstance(event, SessionErrorEvent):
      session_errors.append(event)
    print(serialize_event(event), flush=True)

  sink = BroadcastSink()
  sink.add_listener(print_event)
  service = TranscriptionService(config, credential, sink)

  language = args.language or config.default_language
  logger.info("Starting overhear", input=args.input, session=args.session_id, language=language)

  try:
    await service.start(args.session_id, language)
  except UpstreamConnectionError as e:
    logger.error("Could not connect to the recognition service", error=str(e))
    return 1

  exit_code = 0
  try:
    if args.input == "-":
      chunks = await stream_input(
        service, args.session_id, sys.stdin.buffer, args.chunk_size, args.chunk_interval
      )
    else:
      with open(args.input, "rb") as stream:
        chunks = await stream_input(
          service, args.session_id, stream, args.chunk_size, args.chunk_interval
        )
    logger.info("Input finished", chunks=chunks, linger=args.linger)
    await asyncio.sleep(args.linger)

  except ChannelClosed as e:
    logger.error("Session closed before the input was fully sent", error=str(e))
    exit_code = 1

  finally:
    await service.shutdown()

  if session_errors:
    exit_code = 1
  return exit_code


def run() -> None:
  """Console script entry point."""
  try:
    sys.exit(asyncio.run(main()))
  except KeyboardInterrupt:
    sys.exit(130)


if __name__ == "__main__":
  run()
