"""
Tests for the logging service.
"""
import json
import logging
import os
import shutil
import sys
import tempfile
import time
import unittest
from pathlib import Path

from certgate.models.config import Config
from certgate.services.logging_service import LoggingService, JSONFormatter


class TestJSONFormatter(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.formatter = JSONFormatter()
        self.logger = logging.getLogger('test')

    def _record(self, level=logging.INFO, msg='Test message', exc_info=None):
        return self.logger.makeRecord(
            name='certgate.security.authenticator',
            level=level,
            fn='authenticator.py',
            lno=42,
            msg=msg,
            args=(),
            exc_info=exc_info
        )

    def test_format_basic_log_record(self):
        log_data = json.loads(self.formatter.format(self._record()))

        self.assertIn('timestamp', log_data)
        self.assertEqual(log_data['level'], 'INFO')
        self.assertEqual(log_data['logger_name'], 'certgate.security.authenticator')
        self.assertEqual(log_data['message'], 'Test message')
        self.assertEqual(log_data['line_number'], 42)
        self.assertIsInstance(log_data['thread_id'], int)
        self.assertIsInstance(log_data['process_id'], int)
        self.assertIsNone(log_data['extra_data'])
        self.assertIsNone(log_data['exception_info'])

    def test_format_log_record_with_exception(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            record = self._record(logging.ERROR, 'Error occurred', sys.exc_info())

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['exception_info']['type'], 'ValueError')
        self.assertEqual(log_data['exception_info']['message'], 'Test exception')
        self.assertIsInstance(log_data['exception_info']['traceback'], list)

    def test_format_log_record_with_extra_data(self):
        record = self._record()
        record.extra_data = {
            'fingerprint': 'AB:CD',
            'serial_number': '1A2B3C',
            'remote_addr': '127.0.0.1'
        }

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['extra_data']['fingerprint'], 'AB:CD')
        self.assertEqual(log_data['extra_data']['serial_number'], '1A2B3C')

    def test_format_non_serializable_extra_data(self):
        record = self._record()
        record.extra_data = {'path': Path('/tmp/whitelist.json')}

        log_data = json.loads(self.formatter.format(record))

        self.assertEqual(log_data['extra_data']['path'], '/tmp/whitelist.json')


class LoggingServiceTestCase(unittest.TestCase):
    """Installs a LoggingService into a scratch directory and restores the root logger."""

    log_level = "INFO"

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        root_logger = logging.getLogger()
        self._saved_handlers = root_logger.handlers[:]
        self._saved_level = root_logger.level

        self.config = Config(
            log_level=self.log_level,
            log_file_path=os.path.join(self.temp_dir, "logs", "certgate.log")
        )
        self.logging_service = LoggingService(self.config)

    def tearDown(self):
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
            handler.close()
        for handler in self._saved_handlers:
            root_logger.addHandler(handler)
        root_logger.setLevel(self._saved_level)
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def read_log(self, path=None):
        for handler in logging.getLogger().handlers:
            handler.flush()
        with open(path or self.config.log_file_path, 'r') as f:
            return f.read()


class TestLoggingService(LoggingServiceTestCase):
    """Test the main logging service."""

    def test_initialization(self):
        self.assertTrue(os.path.exists(self.config.log_file_path))
        self.assertEqual(logging.getLogger().level, logging.INFO)
        self.assertEqual(len(logging.getLogger().handlers), 3)

    def test_log_with_context(self):
        self.logging_service.log_with_context(
            'warning',
            'Client authentication failed',
            fingerprint='AB:CD',
            remote_addr='10.0.0.1'
        )

        lines = [json.loads(line) for line in self.read_log().splitlines()]
        entry = next(line for line in lines if line['message'] == 'Client authentication failed')
        self.assertEqual(entry['level'], 'WARNING')
        self.assertEqual(entry['logger_name'], 'certgate')
        self.assertEqual(entry['extra_data'], {'fingerprint': 'AB:CD', 'remote_addr': '10.0.0.1'})

    def test_set_level(self):
        self.logging_service.set_level('debug')

        root_logger = logging.getLogger()
        self.assertEqual(root_logger.level, logging.DEBUG)
        levels = sorted(handler.level for handler in root_logger.handlers)
        self.assertEqual(levels, [logging.DEBUG, logging.DEBUG, logging.ERROR])

    def test_get_health_status(self):
        health = self.logging_service.get_health_status()

        self.assertEqual(health['status'], 'healthy')
        self.assertEqual(health['log_file'], self.config.log_file_path)
        self.assertTrue(health['log_file_writable'])
        self.assertIn('timestamp', health)

    def test_error_log_separation(self):
        logger = logging.getLogger('certgate.security.authenticator')

        logger.info("Client certificate validation successful")
        logger.error("Unexpected error during certificate validation")

        error_log_path = str(Path(self.config.log_file_path).with_suffix('.errors.log'))
        content = self.read_log(error_log_path)
        self.assertIn('Unexpected error during certificate validation', content)
        self.assertNotIn('validation successful', content)

    def test_log_rotation(self):
        logger = logging.getLogger('test')

        large_message = "x" * 1000
        for i in range(100):
            logger.info(f"Message {i}: {large_message}")

        log_files = list(Path(self.config.log_file_path).parent.glob("*.log*"))
        self.assertGreater(len(log_files), 0)


class TestLogRetention(LoggingServiceTestCase):
    """Rotated log files older than the retention window are removed on startup."""

    def test_old_rotated_logs_are_removed(self):
        log_dir = Path(self.config.log_file_path).parent
        old_file = log_dir / "certgate.log.3"
        recent_file = log_dir / "certgate.log.1"
        old_file.write_text("old")
        recent_file.write_text("recent")
        forty_days_ago = time.time() - 40 * 24 * 3600
        os.utime(old_file, (forty_days_ago, forty_days_ago))

        self.logging_service._setup_log_retention()

        self.assertFalse(old_file.exists())
        self.assertTrue(recent_file.exists())


class TestDebugLogging(LoggingServiceTestCase):

    log_level = "DEBUG"

    def test_debug_messages_reach_the_file(self):
        logging.getLogger('certgate.security.allowlist').debug("Whitelist document parsed")

        self.assertIn("Whitelist document parsed", self.read_log())


if __name__ == '__main__':
    unittest.main()
