#!/usr/bin/env python3
"""
Tests for the structured logger.

Run with: pytest tests/test_logger.py -v
"""

import json
import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from imagetofit.logger import HumanFormatter, StructuredFormatter, get_logger


def _record(msg: str, level: int = logging.INFO, **fields) -> logging.LogRecord:
    record = logging.LogRecord('imagetofit', level, __file__, 0, msg, (), None)
    if fields:
        record.extra_fields = fields
    return record


class TestFormatters:

    def test_human_info_has_no_prefix(self):
        assert HumanFormatter().format(_record("Normalized workout")) == "Normalized workout"

    def test_human_fields_and_prefix(self):
        line = HumanFormatter().format(_record("Rejected", logging.WARNING, status=422, reason="json"))
        assert line == "[WARN] Rejected [status=422 | reason=json]"

    def test_structured_is_json(self):
        line = StructuredFormatter().format(_record("Encoded workout", filename="FTP_Test.zwo"))
        data = json.loads(line)

        assert data['level'] == 'INFO'
        assert data['message'] == 'Encoded workout'
        assert data['logger'] == 'imagetofit'
        assert data['fields'] == {'filename': 'FTP_Test.zwo'}
        assert data['timestamp'].endswith('Z')


class TestLogger:

    @pytest.fixture
    def log(self):
        logger = get_logger()
        level, json_mode = logger.level, logger.json_mode
        yield logger
        logger._logger.setLevel(level)
        logger.set_json_mode(json_mode)

    def test_singleton(self):
        assert get_logger() is get_logger()

    def test_set_level(self, log):
        log.set_level('debug')
        assert log.level == logging.DEBUG

        log.set_level('nonsense')
        assert log.level == logging.INFO

    def test_set_json_mode(self, log):
        log.set_json_mode(True)
        assert log.json_mode is True
        assert all(isinstance(h.formatter, StructuredFormatter) for h in log._logger.handlers)

    def test_extra_fields_reach_handlers(self, log):
        seen = []

        class Collector(logging.Handler):
            def emit(self, record):
                seen.append(record)

        handler = Collector()
        log._logger.addHandler(handler)
        try:
            log.set_level('INFO')
            log.info("Normalized workout", warnings=2)
            log.debug("hidden at INFO")
        finally:
            log._logger.removeHandler(handler)

        assert len(seen) == 1
        assert seen[0].extra_fields == {'warnings': 2}


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
