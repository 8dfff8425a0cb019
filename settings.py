"""
Application settings and logging for Team Board.

Values are read from environment variables once at import time.
"""

import os
import json
import logging
import sys


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./teamboard.db")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
TOKEN_EXPIRE_HOURS = int(os.getenv("TOKEN_EXPIRE_HOURS", "24"))
TYPING_TIMEOUT_SECONDS = float(os.getenv("TYPING_TIMEOUT_SECONDS", "3"))
MESSAGE_EDIT_WINDOW_MINUTES = int(os.getenv("MESSAGE_EDIT_WINDOW_MINUTES", "60"))

# Attributes every LogRecord has; anything else came in through `extra`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Plain log line followed by the `extra` fields as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if extras:
            line = f"{line} {json.dumps(extras, default=str, ensure_ascii=False)}"
        return line


def _build_logger() -> logging.Logger:
    app_logger = logging.getLogger("teamboard")
    if not app_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(ExtraFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        app_logger.addHandler(handler)
    app_logger.setLevel(LOG_LEVEL.upper())
    app_logger.propagate = False
    return app_logger


logger = _build_logger()
