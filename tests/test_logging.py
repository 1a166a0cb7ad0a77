import io
import logging
import sys

from paysheet.logging import configure_logging, get_logger


def test_events_route_through_stdlib_logging(caplog):
    configure_logging("INFO")

    with caplog.at_level(logging.INFO):
        get_logger("paysheet.tests").info("schedule_loaded", version="ph_2025")

    assert '"event": "schedule_loaded"' in caplog.text
    assert '"version": "ph_2025"' in caplog.text


def test_logging_outlives_the_stream_it_was_configured_with(monkeypatch, caplog):
    stream = io.StringIO()
    monkeypatch.setattr(sys, "stderr", stream)
    configure_logging("INFO")
    stream.close()
    monkeypatch.setattr(sys, "stderr", io.StringIO())

    with caplog.at_level(logging.INFO):
        get_logger("paysheet.tests").info("payroll_batch_started", employees=1)

    assert "payroll_batch_started" in caplog.text
