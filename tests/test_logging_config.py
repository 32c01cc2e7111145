from unittest import TestCase

from autosend.logging_config import QUIET_LOGGERS, build_logging_config


class TestLoggingConfig(TestCase):
    def test_console_and_file(self):
        cfg = build_logging_config("DEBUG", "/tmp/x.log")
        self.assertEqual(set(cfg["handlers"]), {"console", "file"})
        self.assertEqual(cfg["handlers"]["file"]["filename"], "/tmp/x.log")
        self.assertEqual(cfg["loggers"]["autosend"]["level"], "DEBUG")
        self.assertFalse(cfg["loggers"]["autosend"]["propagate"])

    def test_console_only(self):
        cfg = build_logging_config("INFO", None)
        self.assertEqual(list(cfg["handlers"]), ["console"])

    def test_libraries_quieted(self):
        loggers = build_logging_config("DEBUG", None)["loggers"]
        for name in QUIET_LOGGERS:
            self.assertEqual(loggers[name]["level"], "WARNING")
