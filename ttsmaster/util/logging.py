"""Logging setup shared by every ttsmaster stage.

Library code only calls get_logger(); nothing is printed below WARNING unless
the host application (or TTSMASTER_DEBUG / TTSMASTER_LOG_LEVEL) asks for it.
Stage context (temperature, method, stage, replicates, ...) travels in
``extra=`` and is rendered as key=value pairs on the console and as JSON keys
in the optional JSON-lines file.

Usage:
    from ttsmaster.util.logging import configure_logging, get_logger, stage_timer

    configure_logging(level="INFO", json_file="/tmp/ttsmaster.jsonl")
    logger = get_logger(__name__)
    with stage_timer(logger, "smooth", "spline fitted") as ctx:
        ctx["knots"] = 12
"""

from __future__ import annotations

import json
import logging
import os
import sys
import time
import traceback
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

ROOT_LOGGER = "ttsmaster"

_configured = False

# Record attributes copied from extra={} into formatted output
CONTEXT_FIELDS = ("stage", "method", "temperature", "replicates", "error_type", "duration_ms")


def _context(record: logging.LogRecord) -> Dict[str, Any]:
    return {key: getattr(record, key) for key in CONTEXT_FIELDS if hasattr(record, key)}


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": _timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_context(record))
        if record.exc_info:
            payload["error"] = repr(record.exc_info[1])
            payload["traceback"] = "".join(traceback.format_exception(*record.exc_info))
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """``[time] LEVEL [module] message key=value ...`` with optional ANSI color."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True) -> None:
        super().__init__()
        self.use_color = use_color and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        if self.use_color and record.levelname in self.COLORS:
            level = f"{self.COLORS[record.levelname]}{level}{self.RESET}"
        module = record.name[len(ROOT_LOGGER) + 1:] if record.name.startswith(ROOT_LOGGER + ".") else record.name
        line = f"[{datetime.now(timezone.utc):%H:%M:%S}] {level} [{module}] {record.getMessage()}"
        context = _context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.exc_info:
            line += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return line


def _level_from_env() -> str:
    if os.environ.get("TTSMASTER_DEBUG", "").strip().lower() in ("1", "true", "yes"):
        return "DEBUG"
    return os.environ.get("TTSMASTER_LOG_LEVEL", "WARNING").upper()


def configure_logging(
    *,
    level: Optional[str] = None,
    json_file: Optional[str] = None,
    use_color: bool = True,
) -> logging.Logger:
    """(Re)configure the ``ttsmaster`` logger and return it.

    Args:
        level: DEBUG, INFO, WARNING or ERROR. Defaults to the environment
               (TTSMASTER_DEBUG=1 forces DEBUG, else TTSMASTER_LOG_LEVEL, else WARNING).
        json_file: Optional path for an extra JSON-lines handler.
        use_color: Colorize console output when stderr is a terminal.
    """
    global _configured

    numeric = getattr(logging, (level or _level_from_env()).upper(), logging.WARNING)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(numeric)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ConsoleFormatter(use_color=use_color))
    logger.addHandler(console)

    if json_file:
        try:
            file_handler = logging.FileHandler(json_file, mode="a", encoding="utf-8")
        except OSError as exc:
            logger.warning("cannot open JSON log file %s: %s", json_file, exc)
        else:
            file_handler.setFormatter(JSONFormatter())
            logger.addHandler(file_handler)

    logger.propagate = False
    _configured = True
    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``ttsmaster`` namespace; configures defaults on first use."""
    if not _configured:
        configure_logging()
    if name == "__main__":
        name = "main"
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


@contextmanager
def stage_timer(logger: logging.Logger, stage: str, message: str, **extra: Any) -> Iterator[Dict[str, Any]]:
    """Log ``message`` at INFO with the elapsed time once the block succeeds.

    The yielded dict is merged into the record's extra fields, so the block
    can attach values it only learns while running.
    """
    fields: Dict[str, Any] = dict(extra)
    started = time.perf_counter()
    yield fields
    fields.setdefault("stage", stage)
    fields["duration_ms"] = round((time.perf_counter() - started) * 1000.0, 3)
    context = {k: v for k, v in fields.items() if k in CONTEXT_FIELDS}
    detail = " ".join(f"{k}={v}" for k, v in fields.items() if k not in CONTEXT_FIELDS)
    if detail:
        logger.info("%s: %s", message, detail, extra=context)
    else:
        logger.info(message, extra=context)


def log_exception(
    logger: logging.Logger,
    message: str,
    *,
    error_type: Optional[str] = None,
    **extra: Any,
) -> None:
    """Log the exception being handled, tagged with a category and context.

    Must be called from inside an ``except`` block.
    """
    context = dict(extra)
    if error_type:
        context["error_type"] = error_type
    logger.exception(message, extra=context)
