"""Centralized logging configuration for overhear using structlog."""

import logging
import os
import re
import time
from typing import Any

import structlog
from structlog.dev import DIM, RESET_ALL, Column, ConsoleRenderer, KeyValueColumnFormatter
from structlog.typing import EventDict, Processor, WrappedLogger

# Store program start time for relative timestamps
_PROGRAM_START_TIME = time.time()

_TOKEN_PATTERN = re.compile(r"(token=)[^&\s'\"]+")


def hex_to_ansi_fg(hex_color: int) -> str:
  """Convert hex color (e.g., 0xad8a89) to ANSI 24-bit foreground escape code."""
  r = (hex_color >> 16) & 0xFF
  g = (hex_color >> 8) & 0xFF
  b = hex_color & 0xFF
  return f"\x1b[38;2;{r};{g};{b}m"


def redact_credentials(value: str) -> str:
  """Replace the value of any ``token=`` query parameter with asterisks."""
  return _TOKEN_PATTERN.sub(r"\1***", value)


def _redact_processor(
  _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
  """Scrub credentials from every string value before rendering."""
  for key, value in event_dict.items():
    if isinstance(value, str) and "token=" in value:
      event_dict[key] = redact_credentials(value)
  return event_dict


def _relative_time_processor(
  _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
  """Add relative timestamp since program start as +[hh:][mm:]ss.mmm."""
  elapsed = time.time() - _PROGRAM_START_TIME

  hours = int(elapsed // 3600)
  minutes = int((elapsed % 3600) // 60)
  seconds = elapsed % 60

  hours_str = f"{hours:02d}:" if hours else ""
  minutes_str = f"{minutes:02d}:" if minutes or hours else ""

  event_dict["timestamp"] = f"+{hours_str}{minutes_str}{seconds:06.3f}"
  return event_dict


def _compact_level_processor(
  _logger: WrappedLogger, _method_name: str, event_dict: EventDict
) -> EventDict:
  """Convert log levels to a compact, colored 4-character format."""
  reset = "\x1b[0m"
  level_mapping = {
    "debug": f"{hex_to_ansi_fg(0x908CAA)}dbug{reset}",
    "info": f"{hex_to_ansi_fg(0x9CCFD8)}info{reset}",
    "warning": f"{hex_to_ansi_fg(0xF6C177)}warn{reset}",
    "error": f"{hex_to_ansi_fg(0xEB6F92)}eror{reset}",
    "exception": f"{hex_to_ansi_fg(0xEB6F92)}exc!{reset}",
    "critical": f"\x1b[48;2;235;111;146;38;2;33;32;46mcrit{reset}",
  }

  level = event_dict.get("level")
  if level in level_mapping:
    event_dict["level"] = f"[{level_mapping[level]}]"

  return event_dict


def _console_renderer() -> ConsoleRenderer:
  logger_name_formatter = KeyValueColumnFormatter(
    key_style=None,
    value_style=hex_to_ansi_fg(0x7D6B95),
    reset_style=RESET_ALL,
    value_repr=str,
    prefix="[",
    postfix="]",
  )

  return ConsoleRenderer(
    colors=True,
    columns=[
      # Default formatter for bound key/values
      Column(
        "",
        KeyValueColumnFormatter(
          key_style=hex_to_ansi_fg(0x6E6A86),
          value_style=hex_to_ansi_fg(0xF6C177),
          reset_style=RESET_ALL,
          value_repr=str,
        ),
      ),
      Column(
        "timestamp",
        KeyValueColumnFormatter(
          key_style=None, value_style=DIM, reset_style=RESET_ALL, value_repr=str
        ),
      ),
      Column(
        "level",
        KeyValueColumnFormatter(
          key_style=None, value_style="", reset_style=RESET_ALL, value_repr=str
        ),
      ),
      Column("logger_name", logger_name_formatter),
      Column("logger", logger_name_formatter),
      Column(
        "event",
        KeyValueColumnFormatter(
          key_style=None, value_style="", reset_style=RESET_ALL, value_repr=str, width=30
        ),
      ),
    ],
  )


def setup_logging(
  level: str = "INFO", json_output: bool = False, correlation_id: str | None = None
) -> None:
  """Configure structured logging for the application."""

  shared_processors: list[Processor] = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.stdlib.ExtraAdder(),
    _redact_processor,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
  ]

  if correlation_id:
    shared_processors.insert(0, structlog.contextvars.merge_contextvars)
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)

  log_renderer: Processor
  if json_output:
    shared_processors.append(structlog.processors.TimeStamper(fmt="iso"))
    log_renderer = structlog.processors.JSONRenderer()
  else:
    shared_processors.extend([_compact_level_processor, _relative_time_processor])
    log_renderer = _console_renderer()

  structlog.configure(
    processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
  )

  formatter = structlog.stdlib.ProcessorFormatter(
    foreign_pre_chain=shared_processors,
    processors=[
      structlog.stdlib.ProcessorFormatter.remove_processors_meta,
      log_renderer,
    ],
  )

  # Logs go to stderr; stdout is reserved for emitted events
  handler = logging.StreamHandler()
  handler.setFormatter(formatter)
  root_logger = logging.getLogger()
  root_logger.handlers.clear()
  root_logger.addHandler(handler)
  root_logger.setLevel(level)

  # The websockets library logs every frame at DEBUG
  websockets_logger = logging.getLogger("websockets")
  websockets_logger.handlers.clear()
  websockets_logger.setLevel(logging.WARNING)
  websockets_logger.propagate = True


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
  """Get a structured logger instance."""
  return structlog.get_logger(name, **initial_values)


def setup_logging_from_env() -> None:
  """Setup logging using environment variables."""
  log_level = os.getenv("LOG_LEVEL", "INFO").upper()
  json_output = os.getenv("JSON_LOGS", "false").lower() in ("true", "1", "yes", "on")
  correlation_id = os.getenv("CORRELATION_ID")

  setup_logging(level=log_level, json_output=json_output, correlation_id=correlation_id)
