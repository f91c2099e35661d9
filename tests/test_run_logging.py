"""Tests for event-line formatting and the tee stream."""

from __future__ import annotations

import io
import logging
from pathlib import Path

from run_logging import TeeStream, configure_logging, format_exception_message, log_event


def test_log_event_formats_values(capsys):
    log_event(
        "DATE_RESOLVED",
        date="2016-03-21",
        ok=True,
        attempts=25,
        filename=None,
        path=Path("output/documents/2016/03/greek/21.03.2016.pdf"),
        note="two words",
    )
    assert capsys.readouterr().out == (
        "DATE_RESOLVED date=2016-03-21 ok=true attempts=25 filename=null "
        "path=output/documents/2016/03/greek/21.03.2016.pdf note=\"two words\"\n"
    )


def test_tee_stream_writes_everywhere():
    first, second = io.StringIO(), io.StringIO()
    tee = TeeStream(first, second)
    assert tee.write("hello\n") == 6
    tee.flush()
    assert first.getvalue() == second.getvalue() == "hello\n"
    assert tee.isatty() is False


def test_format_exception_message_falls_back_to_type_name():
    assert format_exception_message(ValueError("bad value")) == "bad value"
    assert format_exception_message(TimeoutError()) == "TimeoutError"


def test_configure_logging_keeps_urllib3_at_info():
    urllib3_logger = logging.getLogger("urllib3")
    previous = urllib3_logger.level
    try:
        configure_logging(verbose=True)
        assert urllib3_logger.level == logging.INFO
    finally:
        urllib3_logger.setLevel(previous)
