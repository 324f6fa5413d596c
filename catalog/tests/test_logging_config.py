"""Tests for console logging and the JSONL event log."""

import json
import logging

import pytest

from catalog.logging_config import get_logger, log_catalog_event, setup_logging


@pytest.fixture(autouse=True)
def reset_catalog_logger():
    yield
    logger = logging.getLogger("catalog")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def _events(log_dir):
    files = list(log_dir.glob("events_*.jsonl"))
    assert len(files) == 1
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]


class TestEventLog:
    """Batch events land in the daily JSONL file."""

    def test_only_events_are_written(self, tmp_path):
        setup_logging(log_dir=tmp_path)
        log_catalog_event(
            "row_fail",
            {"message": "Row 2: failed, missing product name", "row": 2, "kind": "validation"},
            level=logging.WARNING,
        )
        get_logger("importer").info("plain line")

        events = _events(tmp_path)
        assert len(events) == 1
        assert events[0]["event"] == "row_fail"
        assert events[0]["level"] == "WARNING"
        assert events[0]["message"] == "Row 2: failed, missing product name"
        assert events[0]["row"] == 2
        assert events[0]["kind"] == "validation"

    def test_debug_events_recorded_below_console_level(self, tmp_path, capsys):
        setup_logging(level=logging.INFO, log_dir=tmp_path)
        log_catalog_event("row_success", {"row": 1, "id": "p1"}, level=logging.DEBUG)

        assert _events(tmp_path)[0]["id"] == "p1"
        assert "row_success" not in capsys.readouterr().err

    def test_unicode_kept(self, tmp_path):
        setup_logging(log_dir=tmp_path)
        log_catalog_event("row_success", {"message": "Row 1: saved فلتر زيت"})
        assert "فلتر زيت" in (list(tmp_path.glob("*.jsonl"))[0]).read_text(encoding="utf-8")

    def test_event_log_disabled(self, tmp_path):
        setup_logging(log_dir=tmp_path, event_log=False)
        log_catalog_event("import_start", {"rows": 3})
        assert list(tmp_path.iterdir()) == []


class TestConsole:
    """Console output."""

    def test_lines_go_to_stderr(self, tmp_path, capsys):
        setup_logging(log_dir=tmp_path)
        get_logger("store").warning("store unavailable")
        err = capsys.readouterr().err
        assert "[WARNING] catalog.store: store unavailable" in err

    def test_setup_replaces_handlers(self, tmp_path):
        setup_logging(log_dir=tmp_path)
        setup_logging(log_dir=tmp_path)
        assert len(logging.getLogger("catalog").handlers) == 2

    def test_get_logger_names(self):
        assert get_logger().name == "catalog"
        assert get_logger("importer").name == "catalog.importer"
