import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from agentic.logging_setup import setup_logging


@pytest.fixture(autouse=True)
def _restore_root_handlers() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    root.handlers = []
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.handlers = handlers
    root.setLevel(level)


def _file_handlers() -> list[logging.FileHandler]:
    return [h for h in logging.getLogger().handlers if isinstance(h, logging.FileHandler)]


def test_repeated_setup_closes_previous_file_handlers(tmp_path: Path) -> None:
    setup_logging(log_file=tmp_path / "first.log")
    (first,) = _file_handlers()

    setup_logging(log_file=tmp_path / "second.log")
    (second,) = _file_handlers()

    assert first is not second
    assert first.stream is None
    assert second.stream is not None
    assert len(logging.getLogger().handlers) == 2


def test_file_handler_receives_debug_records(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "agentic.log"
    setup_logging(logging.WARNING, log_file=log_file)

    logging.getLogger("agentic.test").debug("checkpoint saved")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "checkpoint saved" in log_file.read_text(encoding="utf-8")
