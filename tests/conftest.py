"""Shared pytest fixtures and configuration for pytest."""

import logging
import sys
from collections.abc import Iterator

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for platform-specific tests."""
    config.addinivalue_line("markers", "unix_only: mark test to run only on Unix")


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Auto-skip tests based on platform markers."""
    skip_unix = pytest.mark.skip(reason="Unix-only test")

    for item in items:
        if "unix_only" in item.keywords and sys.platform == "win32":
            item.add_marker(skip_unix)


@pytest.fixture(autouse=True)
def reset_wasmhttp_logging() -> Iterator[None]:
    """Undo configure_logging() so caplog sees wasmhttp records in every test."""
    yield
    root = logging.getLogger("wasmhttp")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
