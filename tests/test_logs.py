"""Tests for logging setup and credential redaction."""

import json
import logging

from overhear.logs import get_logger, redact_credentials, setup_logging, setup_logging_from_env


class TestRedaction:
  """Test credential redaction used by the log pipeline."""

  def test_redact_token_parameter(self):
    url = "wss://api.deepgram.com/v1/listen?model=nova-2&token=abc123&language=en"

    assert redact_credentials(url) == (
      "wss://api.deepgram.com/v1/listen?model=nova-2&token=***&language=en"
    )

  def test_redact_leaves_other_text_alone(self):
    assert redact_credentials("no credentials here") == "no credentials here"


class TestSetupLogging:
  """Test the structlog pipeline configuration."""

  def test_json_output_is_redacted(self, capsys):
    setup_logging(level="DEBUG", json_output=True)

    get_logger("test/logs").info("Connecting", url="wss://host/listen?token=secret&model=x")

    err = capsys.readouterr().err.strip().splitlines()[-1]
    record = json.loads(err)
    assert record["event"] == "Connecting"
    assert record["logger"] == "test/logs"
    assert record["url"] == "wss://host/listen?token=***&model=x"
    assert "secret" not in err

  def test_console_output_goes_to_stderr(self, capsys):
    setup_logging(level="INFO")

    get_logger("test/logs").info("Console line", session="s1")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Console line" in captured.err

  def test_level_filtering(self, capsys):
    setup_logging(level="WARNING", json_output=True)

    logger = get_logger("test/logs")
    logger.info("hidden")
    logger.warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err

  def test_websockets_logger_quietened(self):
    setup_logging(level="DEBUG")

    assert logging.getLogger("websockets").level == logging.WARNING

  def test_setup_from_env(self, monkeypatch, capsys):
    monkeypatch.setenv("LOG_LEVEL", "error")
    monkeypatch.setenv("JSON_LOGS", "true")
    monkeypatch.delenv("CORRELATION_ID", raising=False)

    setup_logging_from_env()

    assert logging.getLogger().level == logging.ERROR
    get_logger("test/logs").error("failure")
    assert json.loads(capsys.readouterr().err.strip().splitlines()[-1])["level"] == "error"
