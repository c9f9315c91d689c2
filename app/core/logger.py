"""Logging configuration shared by the API, the CLI and Celery workers."""
import logging
import logging.config
import re

from app.core.config import settings

_JWT_RE = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")
_REFRESH_RE = re.compile(r"(refresh_token=)[^;\s&]+", re.IGNORECASE)


class RedactTokensFilter(logging.Filter):
    """Mask bearer/refresh token material before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _REFRESH_RE.sub(r"\1[REDACTED]", _JWT_RE.sub("[REDACTED]", message))
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: str | None = None) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {"redact": {"()": RedactTokensFilter}},
            "formatters": {
                "default": {"format": "%(asctime)s %(levelname)s %(name)s %(message)s"},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "filters": ["redact"],
                },
            },
            "root": {"level": (level or settings.LOG_LEVEL).upper(), "handlers": ["console"]},
            "loggers": {
                "uvicorn.access": {"level": "WARNING"},
                "sqlalchemy.engine": {"level": "WARNING"},
            },
        }
    )
