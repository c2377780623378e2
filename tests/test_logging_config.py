from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from ytextract.config import load_settings
from ytextract.logging_config import (
    LOG_FILE_NAME,
    ROOT_LOGGER_NAME,
    configure_logging,
    redact_signed_query_values,
)


@pytest.fixture(autouse=True)
def _restore_logger() -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(logger.handlers)
    level = logger.level
    propagate = logger.propagate
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in handlers:
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


def test_configure_logging_without_log_dir_is_console_only() -> None:
    log_file = configure_logging(load_settings(_env_file=None, log_dir=None))

    assert log_file is None
    assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1


def test_configure_logging_writes_json_file(tmp_path: Path) -> None:
    log_file = configure_logging(load_settings(_env_file=None, log_dir=str(tmp_path)))

    assert log_file == tmp_path.resolve() / LOG_FILE_NAME
    logging.getLogger("ytextract.streams").info(
        "stream resolved url=%s",
        "https://rr1.example/videoplayback?itag=18&sig=SECRET&expire=1",
    )
    for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
        handler.flush()

    records = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    resolved = [record for record in records if record["event"].startswith("stream resolved")]
    assert len(resolved) == 1
    assert "SECRET" not in resolved[0]["event"]
    assert "sig=[redacted]" in resolved[0]["event"]
    assert resolved[0]["logger"] == "ytextract.streams"
    assert resolved[0]["level"] == "info"


def test_redaction_keeps_unsigned_parameters() -> None:
    event_dict = redact_signed_query_values(
        None,
        "info",
        {"event": "call url=https://host/v1/player?key=abc&prettyPrint=false"},
    )

    assert event_dict["event"] == "call url=https://host/v1/player?key=[redacted]&prettyPrint=false"
