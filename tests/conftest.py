import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_qrforge_logging():
    """Undo setup_logging() calls made by CLI and logging tests."""
    yield
    root = logging.getLogger("qrforge")
    for handler in root.handlers:
        handler.close()
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
