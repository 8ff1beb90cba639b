"""
Centralized Logging

Architectural Intent:
- Provides structured JSON logging for all clusterforge components
- Centralizes log configuration for the "clusterforge" logger hierarchy
- Carries the cluster and pipeline step a record belongs to, when the caller
  passed them through `extra`
"""

import json
import logging
import sys
from datetime import datetime, UTC
from typing import Union

CONTEXT_FIELDS = ("cluster", "step")


class JSONFormatter(logging.Formatter):
    """Structured JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_entry[name] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    json_format: bool = False,
) -> logging.Logger:
    """Configure logging for the clusterforge application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, etc.), as a number or name.
        json_format: If True, use JSON structured output. Otherwise human-readable.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    root = logging.getLogger("clusterforge")
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )

    root.addHandler(handler)
    return root
