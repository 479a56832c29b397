# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Iterator

import pytest

from observability import logger


@pytest.fixture(autouse=True)
def log_lines(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[str]]:
    """Capture logger output instead of writing to stdout."""
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)
    logger.configure(level="DEBUG", json_lines=True)
    yield captured
    logger.configure(level="INFO", json_lines=True)
