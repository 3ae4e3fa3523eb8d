"""
Tests for structured logging.
"""

import json
import logging
from pathlib import Path

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from change_guardian.core.logger import (
    ColoredFormatter,
    ComponentLogger,
    ContextFilter,
    JSONFormatter,
    ROOT_LOGGER_NAME,
    parse_level,
    setup_logger,
)


def make_record(msg="hello", **extra):
    record = logging.LogRecord("change_guardian", logging.ERROR, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:

    def test_colored_formatter_plain(self):
        formatter = ColoredFormatter(use_colors=False, use_icons=False)
        record = make_record(component="GUARDIAN", file_path="src/app.js", error_code="INT-01")
        assert formatter.format(record) == (
            "ERROR [GUARDIAN] (src/app.js) hello [INT-01: Excessive line loss]"
        )

    def test_unknown_error_code(self):
        formatter = ColoredFormatter(use_colors=False, use_icons=False)
        assert "[XYZ: Unknown error]" in formatter.format(make_record(error_code="XYZ"))

    def test_json_formatter_includes_context(self):
        entry = json.loads(JSONFormatter().format(make_record(component="AUDIT", file_path=None)))
        assert entry["level"] == "ERROR"
        assert entry["component"] == "AUDIT"
        assert "file_path" not in entry

    def test_context_filter_fills_missing_fields(self):
        record = make_record()
        assert ContextFilter().filter(record)
        assert record.component is None
        assert record.error_code is None


class TestSetupLogger:

    def test_file_output_is_json_lines(self, tmp_path):
        log_file = tmp_path / "logs" / "system.log"
        setup_logger(log_file=log_file, console=False)

        ComponentLogger("GIT-INTEGRITY").warning("Snapshot protection disabled", error_code="GIT-02")
        logging.getLogger("change_guardian.core.config").warning("from a module logger")

        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert entries[0]["component"] == "GIT-INTEGRITY"
        assert entries[0]["error_code"] == "GIT-02"
        assert entries[1]["logger"] == "change_guardian.core.config"

    def test_repeated_setup_does_not_duplicate_handlers(self):
        setup_logger(console=True)
        logger = setup_logger(console=True)
        assert len(logger.handlers) == 1

    def test_level_filtering(self, tmp_path):
        log_file = tmp_path / "system.log"
        setup_logger(log_file=log_file, level=logging.WARNING, console=False)
        ComponentLogger("STATS").info("quiet")
        ComponentLogger("STATS").error("loud")
        assert "loud" in log_file.read_text()
        assert "quiet" not in log_file.read_text()


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("nonsense") == logging.INFO
    assert parse_level("nonsense", logging.ERROR) == logging.ERROR
