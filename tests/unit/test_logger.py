import json
import logging
import unittest

from src.utils.logger import JsonFormatter, configure_from_settings, get_logger, log_event


class _CaptureHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records = []

    def emit(self, record: logging.LogRecord) -> None:
        self.records.append(record)


class LoggerTestCase(unittest.TestCase):
    def test_loggers_live_under_the_package_namespace(self) -> None:
        self.assertEqual(get_logger("normalizer").name, "mathviz.normalizer")
        self.assertEqual(get_logger("mathviz.api").name, "mathviz.api")
        self.assertEqual(get_logger("mathviz").name, "mathviz")

    def test_json_formatter_merges_structured_fields(self) -> None:
        logger = get_logger("mathviz.test.logger")
        handler = _CaptureHandler()
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)
        try:
            log_event(logger, logging.INFO, "Converted", source="generic", target="d3")
        finally:
            logger.removeHandler(handler)

        payload = json.loads(JsonFormatter({"service": "mathviz"}).format(handler.records[0]))
        self.assertEqual(payload["message"], "Converted")
        self.assertEqual(payload["level"], "INFO")
        self.assertEqual(payload["service"], "mathviz")
        self.assertEqual(payload["target"], "d3")
        self.assertTrue(payload["timestamp"].endswith("Z"))

    def test_configure_from_settings(self) -> None:
        root = logging.getLogger()
        previous_handlers, previous_level = root.handlers, root.level
        try:
            configure_from_settings({"level": "error", "format": "text"})
            self.assertEqual(root.level, logging.ERROR)
            self.assertNotIsInstance(root.handlers[0].formatter, JsonFormatter)

            configure_from_settings({"level": "ERROR"}, level="debug")
            self.assertEqual(root.level, logging.DEBUG)
            self.assertIsInstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers = previous_handlers
            root.setLevel(previous_level)


if __name__ == "__main__":
    unittest.main()
