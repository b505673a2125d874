import json
import logging
import os
import sys
import time
from typing import Any, Dict

# JSON logs to stdout for unattended runs (CI, cron), one object per line.
# Application loggers live under "ami_orch" and default to INFO;
# everything else (boto3, botocore, urllib3) defaults to WARNING.

_RESERVED = frozenset((
    "args", "msg", "levelname", "levelno", "name", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno",
    "funcName", "created", "msecs", "relativeCreated", "thread",
    "threadName", "processName", "process", "taskName",
))


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": time.time(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for k, v in record.__dict__.items():
            if k in _RESERVED or k.startswith("_"):
                continue
            payload.setdefault(k, v)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(verbose: bool = False) -> None:
    """
    Setup logging with JSON formatting.

    Args:
        verbose: If True, sets ami_orch logger to DEBUG and root logger to INFO.
                 If False, uses environment variables or defaults (WARNING for root, INFO for ami_orch).
    """
    if verbose:
        root_level = "INFO"
        app_level = "DEBUG"
    else:
        root_level = os.environ.get("AMI_ROOT_LOG_LEVEL", "WARNING").upper()
        app_level = os.environ.get("AMI_APP_LOG_LEVEL", "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    # Handler should not filter - let loggers control what gets through
    handler.setLevel(logging.DEBUG)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    root.addHandler(handler)

    app_logger = logging.getLogger("ami_orch")
    app_logger.setLevel(app_level)
    app_logger.propagate = True
