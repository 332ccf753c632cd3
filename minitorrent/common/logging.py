import datetime as dt
import json
import copy
from typing import override
import logging
import logging.config
import atexit
from pathlib import Path

LOG_DIR = Path("data") / "logs"

# attributes every LogRecord has; anything else came in through `extra=`
RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime", "taskName"}


class JSONLogFormatter(logging.Formatter):
    # fmt_keys maps output key -> LogRecord attribute
    def __init__(self, *, fmt_keys: dict[str, str] | None = None):
        super().__init__()
        self.fmt_keys = fmt_keys if fmt_keys is not None else {}

    @override
    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self._record_dict(record), default=str)

    def _record_dict(self, record: logging.LogRecord) -> dict:
        fixed = {
            "message": record.getMessage(),
            "timestamp": dt.datetime.fromtimestamp(
                record.created, tz=dt.timezone.utc
            ).isoformat(),
        }
        if record.exc_info is not None:
            fixed["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info is not None:
            fixed["stack_info"] = self.formatStack(record.stack_info)

        entry = {}
        for key, attr in self.fmt_keys.items():
            value = fixed.pop(attr, None)
            entry[key] = value if value is not None else getattr(record, attr, None)
        entry.update(fixed)

        for key, value in record.__dict__.items():
            if key not in RECORD_ATTRS:
                entry[key] = value
        return entry


LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "[%(levelname)s|%(module)s|L%(lineno)d] %(asctime)s: %(message)s",
            "datefmt": "%Y-%m-%dT%H:%M:%S%z",
        },
        "json": {
            "()": JSONLogFormatter,
            "fmt_keys": {
                "level": "levelname",
                "message": "message",
                "timestamp": "timestamp",
                "logger": "name",
                "module": "module",
                "function": "funcName",
                "line": "lineno",
            },
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": "WARNING",
            "formatter": "simple",
            # stdout carries command output
            "stream": "ext://sys.stderr",
        },
        "file_json": {
            "class": "logging.handlers.RotatingFileHandler",
            "level": "DEBUG",
            "formatter": "json",
            "filename": "default",
            "maxBytes": 5000000,
            "backupCount": 5,
        },
        "queue_handler": {
            "class": "logging.handlers.QueueHandler",
            "handlers": ["console", "file_json"],
            "respect_handler_level": True,
        },
    },
    "loggers": {"root": {"level": "DEBUG", "handlers": ["queue_handler"]}},
}


def build_logging_config(log_path: Path, verbose: bool = False) -> dict:
    config = copy.deepcopy(LOGGING_CONFIG)
    config["handlers"]["file_json"]["filename"] = str(log_path)
    if verbose:
        config["handlers"]["console"]["level"] = "DEBUG"
    return config


def config_logging(file_name: str, verbose: bool = False, log_dir: Path = LOG_DIR) -> Path:
    log_path = log_dir / file_name
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(log_path, verbose))

    # QueueHandler delivers through a listener thread
    queue_handler = logging.getHandlerByName("queue_handler")
    if queue_handler is not None:
        queue_handler.listener.start()
        atexit.register(queue_handler.listener.stop)
    return log_path
