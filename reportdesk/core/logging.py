import json
import logging
import sys
from typing import Any

from loguru import logger

_NOISY_LOGGERS = ('httpx', 'httpcore')


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=level,
        enqueue=True,
        backtrace=True,
        diagnose=False,
    )
    logging.root.handlers = [_InterceptHandler()]
    logging.root.setLevel(level)
    # httpx logs every request at INFO; only show those when debugging.
    quiet_level = logging.root.level if logging.root.level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def log_event(event: str, level: str = 'INFO', **fields: Any) -> None:
    payload = {'event': event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
