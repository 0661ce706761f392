"""
Logging setup for the certificate gateway.

Modules log through ``logging.getLogger(__name__)``. LoggingService attaches
three handlers to the root logger: a rotating JSON file, the console, and a
rotating JSON file that receives only errors. Structured fields travel in
``extra={'extra_data': {...}}`` and land in the JSON ``extra_data`` key.
"""
import json
import logging
import logging.handlers
import os
import sys
import traceback
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Any, List, Optional


@dataclass
class LogEntry:
    """One line of the JSON log."""
    timestamp: str
    level: str
    logger_name: str
    message: str
    module: str
    function: str
    line_number: int
    thread_id: int
    process_id: int
    extra_data: Optional[Dict[str, Any]] = None
    exception_info: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> 'LogEntry':
        entry = cls(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            logger_name=record.name,
            message=record.getMessage(),
            module=record.module,
            function=record.funcName,
            line_number=record.lineno,
            thread_id=record.thread,
            process_id=record.process,
            extra_data=getattr(record, 'extra_data', None)
        )
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry.exception_info = {
                'type': exc_type.__name__,
                'message': str(exc_value),
                'traceback': traceback.format_exception(exc_type, exc_value, exc_tb)
            }
        return entry


class JSONFormatter(logging.Formatter):
    """Renders each record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        # default=str keeps Paths, datetimes and enums in extra_data printable
        return json.dumps(asdict(LogEntry.from_record(record)), default=str)


class LoggingService:
    """Owns the root logger's handlers for the lifetime of the gateway."""

    CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    MAX_LOG_BYTES = 10 * 1024 * 1024
    LOG_BACKUPS = 5
    MAX_ERROR_LOG_BYTES = 5 * 1024 * 1024
    ERROR_LOG_BACKUPS = 3
    RETENTION_DAYS = 30

    def __init__(self, config):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.log_path = Path(config.log_file_path)
        self.error_log_path = self.log_path.with_suffix('.errors.log')
        self._error_handler: Optional[logging.Handler] = None

        self._setup_logging()
        self._setup_log_retention()
        self.logger.info(f"Logging to {self.log_path} at level {config.log_level}")

    @staticmethod
    def _resolve_level(name: str) -> int:
        return getattr(logging, str(name).upper(), logging.INFO)

    def _setup_logging(self):
        """Replace whatever handlers the root logger has with ours."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        level = self._resolve_level(self.config.log_level)

        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        root_logger.setLevel(level)

        for handler in self._build_handlers(level):
            root_logger.addHandler(handler)

    def _build_handlers(self, level: int) -> List[logging.Handler]:
        json_formatter = JSONFormatter()

        main_file = logging.handlers.RotatingFileHandler(
            filename=str(self.log_path),
            maxBytes=self.MAX_LOG_BYTES,
            backupCount=self.LOG_BACKUPS,
            encoding='utf-8'
        )
        main_file.setFormatter(json_formatter)
        main_file.setLevel(level)

        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter(self.CONSOLE_FORMAT))
        console.setLevel(level)

        self._error_handler = logging.handlers.RotatingFileHandler(
            filename=str(self.error_log_path),
            maxBytes=self.MAX_ERROR_LOG_BYTES,
            backupCount=self.ERROR_LOG_BACKUPS,
            encoding='utf-8'
        )
        self._error_handler.setFormatter(json_formatter)
        self._error_handler.setLevel(logging.ERROR)

        return [main_file, console, self._error_handler]

    def _setup_log_retention(self):
        """Delete rotated files (``*.log.N``) older than RETENTION_DAYS."""
        cutoff = (datetime.now() - timedelta(days=self.RETENTION_DAYS)).timestamp()

        for rotated in self.log_path.parent.glob("*.log.*"):
            try:
                if rotated.stat().st_mtime >= cutoff:
                    continue
                rotated.unlink()
                self.logger.info(f"Removed expired log file: {rotated}")
            except OSError as e:
                self.logger.warning(f"Could not remove log file {rotated}: {e}")

    def set_level(self, level: str):
        """Change the root level; the error file stays at ERROR."""
        resolved = self._resolve_level(level)
        root_logger = logging.getLogger()
        root_logger.setLevel(resolved)
        for handler in root_logger.handlers:
            if handler is not self._error_handler:
                handler.setLevel(resolved)
        self.logger.info(f"Log level changed to {level.upper()}")

    def log_with_context(self, level: str, message: str, **context):
        logger = logging.getLogger('certgate')
        getattr(logger, level.lower(), logger.info)(message, extra={'extra_data': context})

    def get_health_status(self) -> Dict[str, Any]:
        """Summary for the /health endpoint."""
        writable = os.access(self.log_path.parent, os.W_OK)
        return {
            'status': 'healthy' if writable else 'degraded',
            'log_file': self.config.log_file_path,
            'log_file_writable': writable,
            'level': logging.getLevelName(logging.getLogger().level),
            'timestamp': datetime.now().isoformat()
        }
