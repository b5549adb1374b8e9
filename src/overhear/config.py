import os
from typing import Annotated
from urllib.parse import urlencode

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, field_validator, validate_call
from pydantic.types import FilePath

from overhear.logs import get_logger, redact_credentials

logger = get_logger("cfg")

DEFAULT_LISTEN_URL = "wss://api.deepgram.com/v1/listen"
CREDENTIAL_ENV_VAR = "DEEPGRAM_API_KEY"


class UpstreamConfig(BaseModel):
  """Configuration for the streaming connection to the recognition service."""

  url: str = DEFAULT_LISTEN_URL
  """Base WebSocket URL of the streaming recognition endpoint."""

  model: str = "nova-2"
  """Recognition model requested for every session."""

  interim_results: bool = True
  """Whether the service should stream provisional results before finalising them."""

  smart_format: bool = True
  """Whether the service applies its formatting pass (numbers, dates, ...)."""

  punctuate: bool = True
  """Whether the service inserts punctuation."""

  extra_params: dict[str, str] = Field(default_factory=dict)
  """Additional query parameters, e.g. ``encoding`` and ``sample_rate`` for raw PCM."""

  handshake_timeout: float = Field(default=10.0, gt=0.0)
  """Maximum time in seconds to wait for the opening handshake."""

  ping_interval: Annotated[float, Field(gt=0.0)] | None = 20.0
  """Interval in seconds between client-initiated pings. None disables them."""

  close_timeout: float = Field(default=5.0, gt=0.0)
  """Maximum time in seconds to wait for the closing handshake."""

  @field_validator("url")
  @classmethod
  def validate_url_scheme(cls, value: str) -> str:
    """Only WebSocket URLs are accepted."""
    if not value.startswith(("ws://", "wss://")):
      raise ValueError(f"url must use the ws:// or wss:// scheme, got {value!r}")
    if "?" in value:
      raise ValueError("url must not contain a query string; use extra_params instead")
    return value

  def query_params(self, language: str, credential: str | None = None) -> dict[str, str]:
    """Build the query parameters for one session's connection request."""
    params = {
      "model": self.model,
      "interim_results": _bool_param(self.interim_results),
      "smart_format": _bool_param(self.smart_format),
      "punctuate": _bool_param(self.punctuate),
    }
    params.update(self.extra_params)
    params["language"] = language
    if credential is not None:
      params["token"] = credential
    return params

  def build_url(self, language: str, credential: str) -> str:
    """Build the full connection URL, credential included."""
    return f"{self.url}?{urlencode(self.query_params(language, credential))}"

  def redacted_url(self, language: str) -> str:
    """Build the connection URL with the credential masked, for logging."""
    return redact_credentials(self.build_url(language, "***"))


class SessionConfig(BaseModel):
  """Configuration for per-session relay behavior."""

  queue_capacity: int = Field(default=100, gt=0)
  """Number of audio frames buffered per session before producers are suspended."""

  shutdown_timeout: float = Field(default=5.0, gt=0.0)
  """Time in seconds a stopping session may spend draining before it is cancelled."""


class OverhearConfig(BaseModel):
  """Top-level overhear configuration."""

  upstream: UpstreamConfig = Field(default_factory=UpstreamConfig)
  """Upstream connection configuration."""

  session: SessionConfig = Field(default_factory=SessionConfig)
  """Per-session relay configuration."""

  default_language: str = Field(default="en", min_length=1)
  """Language code used when a session is started without one."""

  def pretty_print(self) -> None:
    """Log every configuration property at INFO level, defaults included."""
    logger.info("=" * 60)
    logger.info("OVERHEAR CONFIGURATION")
    logger.info("=" * 60)

    logger.info("UPSTREAM SETTINGS:")
    logger.info(f"  URL: {self.upstream.url}")
    logger.info(f"  Model: {self.upstream.model}")
    logger.info(f"  Interim Results: {self.upstream.interim_results}")
    logger.info(f"  Smart Format: {self.upstream.smart_format}")
    logger.info(f"  Punctuate: {self.upstream.punctuate}")
    logger.info(f"  Extra Params: {self.upstream.extra_params or None}")
    logger.info(f"  Handshake Timeout: {self.upstream.handshake_timeout}s")
    logger.info(f"  Ping Interval: {self.upstream.ping_interval}s")
    logger.info(f"  Close Timeout: {self.upstream.close_timeout}s")

    logger.info("SESSION SETTINGS:")
    logger.info(f"  Queue Capacity: {self.session.queue_capacity}")
    logger.info(f"  Shutdown Timeout: {self.session.shutdown_timeout}s")
    logger.info(f"  Default Language: {self.default_language}")

    logger.info("=" * 60)


@validate_call
def load_config_from_file(config_path: FilePath) -> OverhearConfig:
  """Load and validate overhear configuration from a YAML file."""

  logger.info("Loading overhear configuration", path=str(config_path))

  try:
    with open(config_path, "r", encoding="utf-8") as file:
      config_data = yaml.safe_load(file)

  except yaml.YAMLError as e:
    raise ValueError(f"Invalid YAML in configuration file: {e}") from e
  except OSError as e:
    raise ValueError(f"Error reading configuration file: {e}") from e

  if config_data is None:
    raise ValueError("Configuration file is empty")

  if not isinstance(config_data, dict):
    raise ValueError("Configuration file must contain a YAML dictionary")

  config = OverhearConfig.model_validate(config_data)
  config.pretty_print()

  return config


def load_env_file(path: str | None = None) -> str | None:
  """
  Load variables from a ``.env`` file into the process environment.

  Variables already set in the environment win over the file. Without ``path``, the nearest
  ``.env`` in the working directory or one of its parents is used.

  :param path: Explicit file to load.
  :returns: The path of the loaded file, or None when there is no file.
  """
  dotenv_path = path or find_dotenv(usecwd=True)
  if not dotenv_path or not os.path.isfile(dotenv_path):
    return None

  load_dotenv(dotenv_path)
  return dotenv_path


def load_credential(env_var: str = CREDENTIAL_ENV_VAR) -> str | None:
  """Read the recognition service credential from the environment (see ``load_env_file``)."""
  value = os.getenv(env_var, "").strip()
  return value or None


def get_env_or_default(env_var: str, default, var_type: type = str):
  """Get environment variable with type conversion and default fallback."""
  value = os.getenv(env_var)
  if value is None:
    return default

  if var_type is bool:
    return value.lower() in ("true", "1", "yes", "on")
  elif var_type is int:
    try:
      return int(value)
    except ValueError:
      return default
  elif var_type is float:
    try:
      return float(value)
    except ValueError:
      return default
  else:
    return value


def _bool_param(value: bool) -> str:
  return "true" if value else "false"
