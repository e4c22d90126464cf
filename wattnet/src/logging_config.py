"""
JSON-lines logging for the hub process.

Every record becomes one JSON object on stderr. Warnings from best-effort
store writes carry their traceback in the ``exception`` field, so a record
never spans several lines.

CHANGELOG:
- 2026-10-09: Initial creation (STORY-101)
- 2026-10-10: Include formatted exception text (STORY-104)
- 2026-10-15: Accept LOG_LEVEL names directly (STORY-117)

TODO:
- None
"""

import json
import logging
from datetime import UTC, datetime


class JSONFormatter(logging.Formatter):
    """Render a log record as a single-line JSON object.

    Keys: ``timestamp`` (UTC, ISO-8601), ``level``, ``logger`` and
    ``message``; ``exception`` is added only for records logged with
    ``exc_info``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: int | str = logging.INFO) -> None:
    """Route all hub logging through one JSON handler on the root logger.

    Called once from the application lifespan with ``Settings.LOG_LEVEL``.
    Handlers installed earlier (for example by uvicorn's default config)
    are removed first so no record is written twice.

    Args:
        level: Numeric level or level name, case-insensitive.
    """
    root = logging.getLogger()
    root.setLevel(level.upper() if isinstance(level, str) else level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
