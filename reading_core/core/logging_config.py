import json
import logging
import sys
from datetime import datetime
from typing import Optional

from reading_core.core.config import Settings, settings as default_settings

_RESERVED_ATTRS = frozenset(
    [
        "args",
        "asctime",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
    ]
)


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings after parsing the LogRecord.
    """

    def format(self, record):
        from reading_core.core.context import get_trace_id

        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineNo": record.lineno,
            "traceId": get_trace_id(),
        }

        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)

        # Merge extra attributes (structured logging)
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and key not in log_obj:
                log_obj[key] = value

        return json.dumps(log_obj, ensure_ascii=False, default=str)


def setup_logging(config: Optional[Settings] = None):
    """
    Eq. to logging.basicConfig but with JSONFormatter.
    """
    config = config or default_settings
    root_logger = logging.getLogger()
    root_logger.setLevel(config.LOG_LEVEL)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)

    # Set levels for noisy libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.info("JSON Structured Logging initialized.")
