from __future__ import annotations

import logging
from datetime import datetime, timezone

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.event_bus",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg="Handler failed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_appends_known_context_keys() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    output = formatter.format(_record(device_id=3, attempt=2, max_attempts=4, unrelated="x"))

    assert output == "Handler failed | device_id=3 attempt=2 max_attempts=4"


def test_formatter_quotes_free_text_and_renders_datetimes() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", extra_keys=["reason", "status"])
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)

    output = formatter.format(_record(reason="store is down", status=stamp))

    assert output == "Handler failed | reason='store is down' status=2024-01-01T00:00:00+00:00"


def test_formatter_without_context_leaves_message_alone() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record(device_id=None)) == "Handler failed"
