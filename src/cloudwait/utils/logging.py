"""Console and JSON-lines logging for cloudwait."""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Record attributes set through LogContext and written as JSON keys
STRUCTURED_FIELDS = ('resource_id', 'resource_type', 'operation', 'execution_id', 'duration')

QUIET_LIBRARIES = ('boto3', 'botocore', 'urllib3')


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with any structured fields the record carries."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name)) for name in STRUCTURED_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short colored lines: time, level, optional [resource] prefix, message."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, '')
        prefix = f"[{record.resource_id}] " if hasattr(record, 'resource_id') else ''
        return (
            f"{self.formatTime(record, '%H:%M:%S')} "
            f"{color}{record.levelname:8}{self.RESET} {prefix}{record.getMessage()}"
        )


def setup_logging(log_level: str = 'info', log_dir: Optional[str] = '.cloudwait/logs') -> None:
    """Configure the root logger for a cloudwait run.

    The console shows `log_level` and above. When `log_dir` is set, a daily
    `cloudwait-YYYYMMDD.jsonl` file there receives everything from DEBUG up.
    """
    level = getattr(logging, log_level.upper())
    root = logging.getLogger()
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        day = datetime.now(timezone.utc).strftime('%Y%m%d')
        file_handler = logging.FileHandler(directory / f"cloudwait-{day}.jsonl")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)
        root.setLevel(logging.DEBUG)
    else:
        root.setLevel(level)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class LogContext:
    """Attach structured fields to every record created inside the block.

    Example:
        with LogContext(logger, resource_id='ping', operation='create'):
            logger.info("Creating health check")
    """

    def __init__(self, logger: logging.Logger, **fields: Any):
        self.logger = logger
        self.fields = fields
        self._previous_factory = None

    def __enter__(self):
        previous = logging.getLogRecordFactory()
        fields = self.fields

        def factory(*args, **kwargs):
            record = previous(*args, **kwargs)
            record.__dict__.update(fields)
            return record

        self._previous_factory = previous
        logging.setLogRecordFactory(factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._previous_factory is not None:
            logging.setLogRecordFactory(self._previous_factory)
            self._previous_factory = None
