"""
Unit tests for utils/logger.py.
"""

import json
import logging
import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from utils.logger import (
    ColoredFormatter,
    JSONFormatter,
    get_current_log_level,
    get_logger,
    log_context,
    log_execution_time,
    log_test_result,
    log_test_step,
    set_log_level,
    setup_logger,
)


class RecordingHandler(logging.Handler):

    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


class TestLogger(unittest.TestCase):

    def setUp(self):
        self.previous_level = get_current_log_level()
        self.handler = RecordingHandler()

    def tearDown(self):
        set_log_level(self.previous_level)
        for name in ("unit_test_logger", "test_execution"):
            logging.getLogger(name).removeHandler(self.handler)

    def test_registry_returns_same_logger(self):
        logger = setup_logger("unit_test_logger", log_to_file=False, log_to_console=False)
        self.assertIs(get_logger("unit_test_logger"), logger)
        self.assertFalse(logger.propagate)

    def test_set_log_level(self):
        logger = setup_logger("unit_test_logger", log_to_file=False, log_to_console=False)
        self.assertEqual(set_log_level("debug"), "DEBUG")
        self.assertEqual(get_current_log_level(), "DEBUG")
        self.assertEqual(logger.level, logging.DEBUG)
        with self.assertRaises(ValueError):
            set_log_level("chatty")

    def test_log_context_prefixes_messages(self):
        logger = setup_logger("unit_test_logger", log_to_file=False, log_to_console=False)
        logger.addHandler(self.handler)
        set_log_level("INFO")
        with log_context("unit_test_logger", scenario="transfer") as adapter:
            adapter.info("submitted")
        self.assertEqual(self.handler.records[-1].getMessage(), "[scenario=transfer] submitted")

    def test_log_execution_time_reraises(self):
        logger = setup_logger("unit_test_logger", log_to_file=False, log_to_console=False)
        logger.addHandler(self.handler)
        set_log_level("INFO")

        @log_execution_time("unit_test_logger", "unit.fail")
        def fail():
            raise RuntimeError("boom")

        with self.assertRaises(RuntimeError):
            fail()
        self.assertIn("unit.fail failed", self.handler.records[-1].getMessage())

    def test_step_and_result_helpers(self):
        logging.getLogger("test_execution").addHandler(self.handler)
        set_log_level("INFO")
        log_test_step("The first account submits the transaction", keyword="When")
        log_test_result("Transfer tokens", "failed", duration="0.10s")
        messages = [r.getMessage() for r in self.handler.records]
        self.assertIn("Test Step: The first account submits the transaction | Context: keyword=When", messages)
        self.assertEqual(self.handler.records[-1].levelno, logging.ERROR)


class TestFormatters(unittest.TestCase):

    def make_record(self, **extra):
        record = logging.LogRecord("ledger", logging.INFO, __file__, 10, "accepted %s", ("tx",), None)
        record.__dict__.update(extra)
        return record

    def test_json_formatter_includes_extra(self):
        payload = json.loads(JSONFormatter().format(self.make_record(operation="ledger.submit")))
        self.assertEqual(payload["message"], "accepted tx")
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["operation"], "ledger.submit")

    def test_colored_formatter_leaves_record_untouched(self):
        record = self.make_record()
        output = ColoredFormatter("%(levelname)s %(message)s").format(record)
        self.assertIn("\033[32mINFO", output)
        self.assertEqual(record.levelname, "INFO")


if __name__ == '__main__':
    unittest.main()
