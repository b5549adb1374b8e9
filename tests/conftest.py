import logging

import pytest


@pytest.fixture(autouse=True)
def restore_root_logger():
  """Undo handler changes made by setup_logging so later tests do not log to a closed stream."""
  root = logging.getLogger()
  handlers, level = list(root.handlers), root.level
  yield
  root.handlers[:] = handlers
  root.setLevel(level)
