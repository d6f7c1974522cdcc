"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import Iterator

import pytest

# The huebridge testing plugin is registered via a ``pytest11`` entry
# point (pyproject.toml) for external consumers.  In our own test
# suite we disable it (``-p no:huebridge``) and load it here instead,
# so the huebridge import chain runs after pytest-cov starts tracing.
pytest_plugins = ["huebridge.testing._plugin"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (loopback sockets, full run)"
    )


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Put the root and library loggers back the way the test found them."""
    from huebridge._logging import LIBRARY_LOGGERS

    root = logging.getLogger()
    saved_handlers = root.handlers[:]
    saved_level = root.level
    saved_library = {name: logging.getLogger(name).level for name in LIBRARY_LOGGERS}
    yield
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)
    for name, level in saved_library.items():
        logging.getLogger(name).setLevel(level)
