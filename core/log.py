# core/log.py
"""
Logging setup and the per-invocation context handed to ledger operations.
"""
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from db_models.participant import Affiliation

LOGGER_NAME = "diamond_ledger"


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line, including invocation fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for attr in ("invocation_id", "caller", "role"):
            value = getattr(record, attr, None)
            if value is not None:
                payload[attr] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str = "INFO") -> logging.Logger:
    """
    Attach a single stream handler to the ledger logger.

    Safe to call more than once (e.g. app reloads); handlers are replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())
    logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


@dataclass
class InvocationContext:
    """
    Who is calling, plus a logger bound to that caller.

    Built once per request and passed explicitly into every engine and query
    operation.
    """
    caller: str
    role: Affiliation
    invocation_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    logger: logging.LoggerAdapter = field(init=False, repr=False)

    def __post_init__(self):
        self.logger = logging.LoggerAdapter(
            logging.getLogger(LOGGER_NAME),
            {
                "invocation_id": self.invocation_id,
                "caller": self.caller,
                "role": self.role.value,
            },
        )
