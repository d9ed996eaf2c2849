import logging
import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TextIO


class LogFormat(Enum):
    PRETTY = "pretty"
    JSON = "json"


# ANSI color codes
RESET = "\033[0m"
COLORS = {
    "DEBUG": "\033[37m",   # White
    "INFO": "\033[36m",    # Cyan
    "WARNING": "\033[33m", # Yellow
    "ERROR": "\033[31m",   # Red
    "CRITICAL": "\033[41m\033[97m",  # White on Red background
    "TIME": "\033[90m",    # Gray for timestamps
    "MODULE": "\033[35m",  # Magenta
    "MESSAGE": "\033[0m",  # Default
}

# Attributes every LogRecord carries; anything else came in through extra=
_STANDARD_ATTRS = frozenset((
    "name", "args", "msg", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "taskName", "message",
))


class PrettyColoredFormatter(logging.Formatter):
    """
    Pretty, human-readable, colored log formatter.
    Format:
    2025-08-13 14:35:12.345 UTC | WARNING  | query_executor:88 | No object found [pattern=java.lang:type=Foo]
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        timestamp_colored = f"{COLORS['TIME']}{timestamp} UTC{RESET}"

        level_color = COLORS.get(record.levelname, "")
        level_name_colored = f"{level_color}{record.levelname:<8}{RESET}"

        location_colored = f"{COLORS['MODULE']}{record.module}:{record.lineno}{RESET}"

        message = record.getMessage()
        extras = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extras:
            message += " [" + ", ".join(f"{k}={v}" for k, v in extras.items()) + "]"
        message_colored = f"{COLORS['MESSAGE']}{message}{RESET}"

        if record.exc_info:
            message_colored += "\n" + self.formatException(record.exc_info)

        return f"{timestamp_colored} | {level_name_colored} | {location_colored} | {message_colored}"


class JsonFormatter(logging.Formatter):
    """Minimal JSON formatter for structured logs."""
    def format(self, record: logging.LogRecord) -> str:
        base = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in record.__dict__.items():
            if k in _STANDARD_ATTRS:
                continue
            # only include JSON-serializable-ish values
            try:
                json.dumps(v)
                base[k] = v
            except (TypeError, ValueError):
                base[k] = str(v)
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, separators=(",", ":"))


def setup_logging(
    name: str = "jmx_pipe",
    level: str = "INFO",
    log_format: str = LogFormat.PRETTY.value,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler(stream or sys.stderr)

    log_format = log_format.lower()

    if log_format == LogFormat.PRETTY.value:
        handler.setFormatter(PrettyColoredFormatter())
    elif log_format == LogFormat.JSON.value:
        handler.setFormatter(JsonFormatter())
    else:
        raise ValueError(f"Unknown log format: {log_format}")

    logger.handlers = [handler]
    logger.propagate = False
    return logger
