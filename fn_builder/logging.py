"""Structured logging helpers: JSON lines with pipeline context."""

from __future__ import annotations

import json
import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

ROOT_LOGGER = "fn_builder"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        phase = getattr(record, "phase", None)
        if phase:
            payload["phase"] = phase
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class _StderrHandler(logging.StreamHandler):
    """Writes to whatever ``sys.stderr`` is at emit time (test runners swap it)."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value) -> None:
        pass


def get_logger(name: str = ROOT_LOGGER, level: str | int | None = None) -> logging.Logger:
    """Return *name*'s logger, attaching the JSON stderr handler once.

    Module loggers (``fn_builder.*``) propagate to the package logger, so only
    the package logger ever gets a handler.
    """
    logger = logging.getLogger(name)
    if name == ROOT_LOGGER and not logger.handlers:
        handler = _StderrHandler()
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    if level is not None:
        logger.setLevel(level)
    return logger


@contextmanager
def step(name: str, logger: logging.Logger | None = None) -> Iterator[None]:
    """Log the start and end of a pipeline step, with elapsed time."""
    log = logger or logging.getLogger(ROOT_LOGGER)
    log.info("start: %s", name, extra={"phase": name})
    started = time.monotonic()
    try:
        yield
    finally:
        log.info(
            "end: %s (%.2fs)", name, time.monotonic() - started, extra={"phase": name}
        )
