from __future__ import annotations

import json
import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path

# loggers that also write to a file of their own
CHANNEL_FILES = {
    "pharmapos.sales": "sales.log",
    "pharmapos.assistant": "assistant.log",
}

_EVENT_RE = re.compile(r"^(?P<event>[a-z][a-z0-9_]*)(?: (?P<rest>.*))?$", re.DOTALL)
_FIELDS_RE = re.compile(r"^\w+=\S*(?: \w+=\S*)*$")
_FIELD_RE = re.compile(r"(\w+)=(\S*)")


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Messages written as ``event key=value ...`` (the convention used across the
    services) are split into an ``event`` name and a ``fields`` object so the
    sales and assistant logs can be filtered without regexes.
    """

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": message,
        }
        m = _EVENT_RE.match(message)
        if m:
            payload["event"] = m.group("event")
            rest = m.group("rest") or ""
            if _FIELDS_RE.match(rest):
                payload["fields"] = dict(_FIELD_RE.findall(rest))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _handler(path: Path, level: int) -> RotatingFileHandler:
    fh = RotatingFileHandler(path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    fh.setFormatter(JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S"))
    fh.setLevel(level)
    fh._pharmapos = True
    return fh


def _installed(logger: logging.Logger) -> bool:
    return any(getattr(h, "_pharmapos", False) for h in logger.handlers)


def setup_logging(logs_dir: Path, level: int = logging.INFO) -> None:
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    if _installed(root):
        return

    root.addHandler(_handler(logs_dir / "app.log", level))
    root.addHandler(_handler(logs_dir / "errors.log", logging.ERROR))

    for name, filename in CHANNEL_FILES.items():
        logger = logging.getLogger(name)
        logger.addHandler(_handler(logs_dir / filename, logging.INFO))
        logger.setLevel(logging.INFO)
