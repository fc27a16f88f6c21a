# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - CONTAINER SIDECAR
# STATUS: Core - Structured logging with context
# PURPOSE: Consistent, queryable logging across pipeline and recycle paths
# CREATED: 18 OCT 2026
# ============================================================================
"""
Structured Logging

Provides structured, JSON-formatted logging for the foreman. Container
log collectors pick the JSON lines up from stderr; the human format is
used for local runs.

Features:
- Contextual fields (app_name, app_id, phase, signal, exit_code)
- Per-task context via contextvars (timers and the heartbeat task each
  see the context that was active when they were scheduled)
- JSON output for log aggregation
- Named checkpoints for phase transitions

Usage:
    from core.logging import get_logger, log_context

    logger = get_logger("foreman.driver")

    with log_context(phase="port_mapping"):
        logger.info("Waiting for port mapping", extra={"attempts": 3})
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Union


@dataclass
class LogContext:
    """
    Context for structured logging.

    Stored in a context variable so asyncio tasks inherit a copy.
    """
    app_name: Optional[str] = None
    app_id: Optional[str] = None
    phase: Optional[str] = None
    signal: Optional[str] = None
    exit_code: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict, excluding None values."""
        result = {}
        for key, value in asdict(self).items():
            if value is not None and key != "extra":
                result[key] = value
        if self.extra:
            result.update(self.extra)
        return result


_context_stack: ContextVar[Tuple[LogContext, ...]] = ContextVar("foreman_log_context", default=())


def get_current_context() -> LogContext:
    """Get current logging context."""
    stack = _context_stack.get()
    if stack:
        return stack[-1]
    return LogContext()


@contextmanager
def log_context(**kwargs):
    """
    Context manager for adding logging context.

    Args:
        **kwargs: Context fields to add

    Example:
        with log_context(app_name="docs", app_id="1"):
            logger.info("Foreman starting")
    """
    parent = get_current_context()
    new_context = LogContext(
        app_name=kwargs.get("app_name", parent.app_name),
        app_id=kwargs.get("app_id", parent.app_id),
        phase=kwargs.get("phase", parent.phase),
        signal=kwargs.get("signal", parent.signal),
        exit_code=kwargs.get("exit_code", parent.exit_code),
        extra={**parent.extra, **kwargs.get("extra", {})},
    )

    token = _context_stack.set(_context_stack.get() + (new_context,))
    try:
        yield new_context
    finally:
        _context_stack.reset(token)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    Carries the foreman's pid so interleaved sidecar and backend output
    can be told apart by the collector.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": _utcnow().isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "pid": record.process,
            "message": record.getMessage(),
        }

        context_dict = get_current_context().to_dict()
        if context_dict:
            log_data["context"] = context_dict

        if getattr(record, "extra", None):
            log_data["data"] = record.extra

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data["source"] = f"{record.filename}:{record.lineno}"

        return json.dumps(log_data, default=str)


class HumanFormatter(logging.Formatter):
    """
    Human-readable formatter for development.

    Includes identity and phase inline for easy reading.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record for human reading."""
        timestamp = _utcnow().strftime("%Y-%m-%d %H:%M:%S")
        level = record.levelname.ljust(8)

        context = get_current_context()
        context_parts = []
        if context.app_name:
            context_parts.append(f"app={context.app_name}-{context.app_id}")
        if context.phase:
            context_parts.append(f"phase={context.phase}")

        context_str = f" [{', '.join(context_parts)}]" if context_parts else ""

        message = record.getMessage()

        extra_str = ""
        if hasattr(record, "extra") and record.extra:
            extra_str = f" {record.extra}"

        result = f"{timestamp} {level} {record.name}{context_str}: {message}{extra_str}"

        if record.exc_info:
            result += f"\n{self.formatException(record.exc_info)}"

        return result


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that includes context in log records.

    Caller-supplied ``extra`` is merged with the current context and
    stored under ``record.extra`` for the formatters.
    """

    def process(self, msg, kwargs):
        """Process log record to include context."""
        extra = dict(kwargs.get("extra") or {})
        for key, value in get_current_context().to_dict().items():
            extra.setdefault(key, value)

        kwargs["extra"] = {"extra": extra}

        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a context-aware logger.

    Args:
        name: Logger name (e.g., "foreman.driver")

    Returns:
        ContextLogger instance
    """
    return ContextLogger(logging.getLogger(name), {})


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> None:
    """
    Configure logging for the foreman process.

    Logs go to stderr so they never mix with a backend whose stdout is
    being scanned and forwarded.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_output: Use JSON format (for production)
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    if json_output or os.getenv("FOREMAN_LOG_FORMAT", "").lower() == "json":
        formatter = StructuredFormatter()
    else:
        formatter = HumanFormatter()

    root = logging.getLogger()
    root.setLevel(level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)


# ============================================================================
# CHECKPOINT LOGGING
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named checkpoint.

    Checkpoints mark lifecycle transitions (phase_completed, recycle_started,
    route_withdrawn, ...) so a run can be reconstructed from the log stream.

    Args:
        name: Checkpoint name
        data: Optional checkpoint data
        logger: Optional specific logger to use
    """
    if logger is None:
        logger = logging.getLogger("checkpoint")

    checkpoint_data: Dict[str, Any] = {
        "checkpoint": name,
        "timestamp": _utcnow().isoformat().replace("+00:00", "Z"),
    }
    checkpoint_data.update(get_current_context().to_dict())

    if data:
        checkpoint_data["data"] = data

    logger.info(f"CHECKPOINT: {name}", extra={"extra": checkpoint_data})


__all__ = [
    "LogContext",
    "StructuredFormatter",
    "HumanFormatter",
    "ContextLogger",
    "get_logger",
    "configure_logging",
    "log_context",
    "get_current_context",
    "log_checkpoint",
]
