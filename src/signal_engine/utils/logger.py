"""
Enhanced Logging Utilities

Provides structured logging with:
- JSON formatting for production
- Operation timing
- Audit lines for ingests and decisions
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, TextIO


# Extra record attributes copied into JSON output when present
EXTRA_FIELDS = (
    "symbol",
    "source",
    "action",
    "confidence",
    "size_multiplier",
    "completeness",
    "provider",
    "execution_time",
    "reasons",
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class PerformanceLogger:
    """Logger for tracking operation durations."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    @contextmanager
    def timer(self, operation: str, **context):
        """Context manager for timing operations."""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            execution_time = time.perf_counter() - start_time
            extra = {"execution_time": execution_time, **context}
            self.logger.debug(f"Operation completed: {operation} ({execution_time * 1000:.1f}ms)", extra=extra)


class DecisionLogger:
    """Audit-oriented logger for ingests and decisions."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.performance = PerformanceLogger(self.logger)

    def ingested(self, symbol: str, source: str, state: str, completeness: float):
        extra = {"symbol": symbol, "source": source, "completeness": completeness}
        self.logger.info(
            f"📥 {source} fragment merged for {symbol} -> {state} ({completeness:.0%} complete)",
            extra=extra,
        )

    def rejected(self, reason: str, **context):
        self.logger.warning(f"⚠️ Payload rejected: {reason}", extra=context)

    def decision(self, symbol: str, action: str, confidence: float, size_multiplier: float, reasons):
        extra = {
            "symbol": symbol,
            "action": action,
            "confidence": confidence,
            "size_multiplier": size_multiplier,
            "reasons": list(reasons),
        }
        icon = {"EXECUTE": "✅", "WAIT": "⏳"}.get(action, "❌")
        self.logger.info(
            f"{icon} Decision {action} for {symbol} "
            f"(confidence={confidence:.1f}, size={size_multiplier:.2f}x)",
            extra=extra,
        )

    def provider_error(self, provider: str, message: str):
        self.logger.warning(f"Provider {provider} degraded: {message}", extra={"provider": provider})


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = True,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Setup logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional rotating log file path
        json_format: Use JSON formatting
        stream: Console stream (stdout by default)

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(log_path, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_decision_logger(name: str) -> DecisionLogger:
    return DecisionLogger(name)
