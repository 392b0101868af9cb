"""
Structured event logging for the HLMM market maker.

Core Components:
- JsonlLogger: append-only JSON Lines event log used by every component
- DebugLogger: JsonlLogger with levels and prefixed event names
- performance_trace: decorator timing hot paths (signal updates, quoting)
- ErrorContext: structured error capture with location and stack trace

Logging Architecture:
    SignalEngine / RiskManager / MarketMakerBot → Logger → JSON Lines file

Record Format:
    {"ts_ms": 1703123456789, "event": "risk_decision", "side": "BUY", ...}

Usage Patterns:
    logger = JsonlLogger("./data/logs/hlmm_events.jsonl")
    logger.write("fill", {"side": "BUY", "price": 100.0, "size": 0.5})

    logger = DebugLogger("./data/logs/debug.jsonl", level="DEBUG")
    logger.warning("out_of_order_event", {"ts_ms": 1, "last_ts_ms": 2})

    try:
        core.next_quotes()
    except InternalInvariantViolation as e:
        ErrorContext.log_operation_error(logger, "next_quotes", e)
        raise
"""
import dataclasses
import enum
import functools
import inspect
import json
import math
import os
import time
import traceback
from typing import Any, Callable, Dict, Optional

from .utils import now_ms


def _json_default(obj: Any) -> Any:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, enum.Enum):
        return obj.value
    return str(obj)


def _scrub(value: Any) -> Any:
    # Non-finite floats are not valid JSON; log them as null
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _scrub(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_scrub(v) for v in value]
    return value


class JsonlLogger:
    """Append-only JSON Lines logger for structured event logging.

    Each record is one compact JSON object with an injected ``ts_ms`` wall
    clock timestamp and the ``event`` name, followed by the payload fields.

    Not thread-safe for concurrent writes; the bot writes from a single
    event loop.

    Args:
        path: File path for log output (parent directories are created)
    """

    def __init__(self, path: str):
        self.path = path
        dirname = os.path.dirname(path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)
        # Line buffering keeps records visible to tail -f
        self._fp = open(path, "a", buffering=1, encoding="utf-8")

    def write(self, event_type: str, payload: Dict[str, Any]) -> None:
        """Write one event record."""
        rec = {"ts_ms": now_ms(), "event": event_type, **_scrub(payload)}
        self._fp.write(
            json.dumps(rec, separators=(",", ":"), ensure_ascii=False, default=_json_default) + "\n"
        )

    def close(self) -> None:
        """Flush and close the log file. Safe to call more than once."""
        if not self._fp.closed:
            self._fp.close()


class DebugLogger(JsonlLogger):
    """JsonlLogger with hierarchical levels.

    Log Levels:
        CRITICAL (50): invariant violations, aborted decision cycles
        ERROR (40):   malformed input, feed disconnects, failed callbacks
        WARNING (30): out-of-order events, limit-breaching fills
        INFO (20):    quotes, decisions, fills (default)
        DEBUG (10):   per-event signal dumps and performance timing

    Non-INFO events are prefixed (``debug_``, ``warn_``, ``error_``,
    ``critical_``) so they can be filtered with grep.
    """

    LEVELS = {
        'DEBUG': 10,
        'INFO': 20,
        'WARNING': 30,
        'ERROR': 40,
        'CRITICAL': 50
    }

    def __init__(self, path: str, level: str = 'INFO'):
        super().__init__(path)
        # Unknown level names fall back to INFO
        self.level = self.LEVELS.get(level.upper(), self.LEVELS['INFO'])

    def enabled(self, level: str) -> bool:
        return self.level <= self.LEVELS[level]

    def debug(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.enabled('DEBUG'):
            self.write(f"debug_{event_type}", payload)

    def info(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.enabled('INFO'):
            self.write(event_type, payload)

    def warning(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.enabled('WARNING'):
            self.write(f"warn_{event_type}", payload)

    def error(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.enabled('ERROR'):
            self.write(f"error_{event_type}", payload)

    def critical(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self.enabled('CRITICAL'):
            self.write(f"critical_{event_type}", payload)


def log_at(logger: JsonlLogger, level: str, event_type: str, payload: Dict[str, Any]) -> None:
    """Route an event through the level methods when the logger has them.

    A plain JsonlLogger has no levels: everything except DEBUG is written
    under the same prefix a DebugLogger would use.
    """
    if isinstance(logger, DebugLogger):
        getattr(logger, level.lower())(event_type, payload)
        return
    prefix = {"DEBUG": None, "INFO": "", "WARNING": "warn_", "ERROR": "error_", "CRITICAL": "critical_"}[level]
    if prefix is not None:
        logger.write(f"{prefix}{event_type}", payload)


def performance_trace(logger_attr: str = 'logger'):
    """Time the decorated method and log its duration at DEBUG.

    Only active when ``getattr(self, logger_attr)`` is a DebugLogger at DEBUG
    level; otherwise the wrapped call runs untouched. Works for sync and async
    methods. Failures are logged with their duration and re-raised.

    Log Output:
        {"event": "debug_perf_sync_function",
         "function": "hlmm.signals.SignalEngine.snapshot",
         "duration_ms": 0.041, "args_count": 1}
    """

    def decorator(func: Callable) -> Callable:
        def _active_logger(args) -> Optional[DebugLogger]:
            if not args:
                return None
            logger = getattr(args[0], logger_attr, None)
            if not isinstance(logger, DebugLogger) or not logger.enabled('DEBUG'):
                return None
            return logger

        def _record(logger, kind, start, n_args, error=None):
            payload = {
                "function": f"{func.__module__}.{func.__qualname__}",
                "duration_ms": round((time.perf_counter() - start) * 1000, 3),
            }
            if error is None:
                payload["args_count"] = n_args
                logger.debug(f"perf_{kind}_function", payload)
            else:
                payload.update({"error": str(error), "error_type": type(error).__name__})
                logger.error("perf_function_error", payload)

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            logger = _active_logger(args)
            if logger is None:
                return await func(*args, **kwargs)
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _record(logger, "async", start, 0, e)
                raise
            _record(logger, "async", start, len(args) + len(kwargs))
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            logger = _active_logger(args)
            if logger is None:
                return func(*args, **kwargs)
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record(logger, "sync", start, 0, e)
                raise
            _record(logger, "sync", start, len(args) + len(kwargs))
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


class ErrorContext:
    """Structured error reporting.

    Captures exception type and message, the location of the caller that
    reported it, an optional stack trace and free-form context, and writes it
    as one ``error_detailed_error`` record.
    """

    @staticmethod
    def capture_error(
        logger: JsonlLogger,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        include_stack: bool = True,
        level: str = "ERROR",
    ) -> None:
        function_name = "unknown"
        file_name = "unknown"
        line_number = 0

        frame = inspect.currentframe()
        try:
            # Skip capture_error and log_operation_error to reach the reporter
            caller_frame = frame
            for _ in range(2):
                if caller_frame is not None and caller_frame.f_back is not None:
                    caller_frame = caller_frame.f_back
                    if caller_frame.f_code.co_name != "log_operation_error":
                        break
            if caller_frame is not None:
                function_name = caller_frame.f_code.co_name
                file_name = caller_frame.f_code.co_filename
                line_number = caller_frame.f_lineno
        finally:
            del frame

        error_payload = {
            "error_message": str(error),
            "error_type": type(error).__name__,
            "function": function_name,
            "file": file_name,
            "line": line_number,
        }
        if include_stack and error.__traceback__ is not None:
            error_payload["stack_trace"] = "".join(
                traceback.format_exception(type(error), error, error.__traceback__)
            )
        if context:
            error_payload["context"] = context

        log_at(logger, level, "detailed_error", error_payload)

    @staticmethod
    def log_operation_error(
        logger: JsonlLogger,
        operation: str,
        error: Exception,
        context: Optional[Dict[str, Any]] = None,
        level: str = "ERROR",
    ) -> None:
        """Log an error raised by a named operation (e.g. "push_event", "feed")."""
        full_context = {"operation": operation, **(context or {})}
        ErrorContext.capture_error(logger, error, full_context, level=level)
