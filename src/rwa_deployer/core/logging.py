"""Root logger setup driven by ``log_level`` and ``log_format`` settings."""

import json
import logging
import sys
from datetime import datetime, timezone

from rwa_deployer.core.config import Settings, get_settings


class JsonFormatter(logging.Formatter):
    """Render log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: Settings | None = None) -> None:
    """Install a single stream handler on the root logger."""
    settings = settings or get_settings()

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())

    # web3 request logging is noisy at DEBUG
    logging.getLogger("web3").setLevel(max(root.level, logging.INFO))
