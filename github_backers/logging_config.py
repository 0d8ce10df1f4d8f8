"""Logging for the ``backers`` logger tree.

Log lines go to stderr so stdout stays free for rendered backers. The
default is one JSON object per line; ``LOG_FORMAT=text`` switches to a
plain single-line format for interactive runs.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Optional

from github_backers.credentials import redact_search_params

LOGGER_NAME = "backers"
TEXT_FORMAT = "%(levelname)s %(name)s: %(message)s"
EXTRA_KEYS = ("source", "slug", "records", "duration_s", "url")


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per log line, with source/slug extras."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in EXTRA_KEYS:
            val = getattr(record, key, None)
            if val is None:
                continue
            if key == "url":
                val = redact_search_params(str(val))
            log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(
    level: str = "INFO", log_format: str = "json", stream: Optional[IO[str]] = None
) -> logging.Logger:
    """Attach a single stderr handler to the ``backers`` logger and return it."""
    handler = logging.StreamHandler(stream or sys.stderr)
    if log_format == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        handler.setFormatter(JsonFormatter())
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)
    root.propagate = False
    return root
