from __future__ import annotations

import logging
import re
from typing import Iterable

DEV_FORMAT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s"
PROD_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
SECRET_PATTERNS = {
    "token": re.compile(r"(token|secret|password|authorization)\s*[:=]\s*([^\s,;]+)", re.IGNORECASE),
    "bearer": re.compile(r"Bearer\s+[A-Za-z0-9\-_.=:+/]+", re.IGNORECASE),
}


class SecretRedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        msg = SECRET_PATTERNS["token"].sub(lambda m: f"{m.group(1)}=[REDACTED]", msg)
        msg = SECRET_PATTERNS["bearer"].sub("Bearer [REDACTED]", msg)
        record.msg = msg
        record.args = None
        return True


def configure_logging(settings) -> None:
    level = _coerce_level(settings.log_level)
    root = logging.getLogger()
    if not root.handlers:
        root.addHandler(logging.StreamHandler())
    root.setLevel(level)

    if level > logging.DEBUG:
        for noisy in ("sqlalchemy.engine", "uvicorn.access"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    formatter = logging.Formatter(PROD_FORMAT if settings.log_format == "prod" else DEV_FORMAT)
    _apply_formatter(root.handlers, formatter)


def _apply_formatter(handlers: Iterable[logging.Handler], formatter: logging.Formatter) -> None:
    for handler in handlers:
        handler.setFormatter(formatter)
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(SecretRedactionFilter())


def _coerce_level(raw_level) -> int:
    if isinstance(raw_level, int):
        return raw_level
    if isinstance(raw_level, str):
        candidate = raw_level.strip().upper()
        level = logging.getLevelName(candidate)
        if isinstance(level, int):
            return level
    return logging.INFO
