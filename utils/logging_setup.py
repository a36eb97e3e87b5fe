import json
import logging
import sys
from typing import Optional

from utils.env_loader import env_str, load_environments

_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    """Route all logging to stderr, keeping stdout free for CLI JSON output."""
    load_environments()
    level = (level or env_str("LOG_LEVEL", "INFO")).upper()
    if json_format is None:
        json_format = (env_str("LOG_FORMAT", "text") or "text").lower() == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(_TEXT_FORMAT))
    logging.basicConfig(level=level, handlers=[handler], force=True)
