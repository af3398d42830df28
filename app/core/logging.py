"""Structured logging configuration for the ABI Response Engine."""

import logging
import sys
from typing import Any

# Record attributes promoted into the structured line when passed via ``extra``
CONTEXT_FIELDS = (
    "conversation_id",
    "job_id",
    "reservation_id",
    "request_id",
    "visitor_id",
    "phase",
    "step",
)


class StructuredFormatter(logging.Formatter):
    """Key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        if record.exc_info:
            log_data["exc"] = self.formatException(record.exc_info).replace("\n", " | ")

        parts = [f"{k}={v}" for k, v in log_data.items()]
        return " ".join(parts)


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)

        try:
            from app.core.config import get_settings

            settings = get_settings()
            if settings.REQ_ENGINE_ENV == "dev":
                logger.setLevel(logging.DEBUG)
            else:
                logger.setLevel(logging.INFO)
        except Exception:
            # Settings unavailable (missing env); fall back to INFO
            logger.setLevel(logging.INFO)

    return logger



def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Known context fields (job_id, conversation_id, ...) become record
    attributes; anything else is appended as extra data.
    """
    extra: dict[str, Any] = {k: kwargs.pop(k) for k in list(kwargs) if k in CONTEXT_FIELDS}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
