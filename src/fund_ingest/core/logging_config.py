"""
Structured logging configuration for the fund price ingester.

Human-readable console output by default, JSON lines when serialize=True
(e.g. when the scheduler ships logs somewhere searchable).

Usage:
    from fund_ingest.core.logging_config import IngestLogger, get_logger

    logger = get_logger(__name__)
    logger.info(f"Ingesting {len(instruments)} instruments")

    IngestLogger(run_id).attempt_failed(instrument=name, source=adapter.identifier, error=str(e))
"""

import sys
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from loguru import logger


# Event names routed to the dedicated ingestion log file
INGEST_EVENTS = (
    "attempt_failed",
    "fallback_used",
    "instrument_resolved",
    "snapshot_written",
)

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def _text_format(record: Dict[str, Any]) -> str:
    """Text line format; ingestion events also print their context fields."""
    if record["extra"].get("event") in INGEST_EVENTS:
        return TEXT_FORMAT + " | {extra}\n{exception}"
    return TEXT_FORMAT + "\n{exception}"


def configure_logging(
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    enable_console: bool = True,
    enable_file: bool = False,
    rotation: str = "1 week",
    retention: str = "90 days",
    compression: str = "zip",
    serialize: bool = False
) -> None:
    """
    Configure logging for the ingestion run.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (default: logs/)
        enable_console: Enable stderr output
        enable_file: Enable file output
        rotation: When to rotate logs (e.g., "1 week", "10 MB")
        retention: How long to keep logs
        compression: Compression format for old logs
        serialize: Emit JSON records instead of formatted text
    """
    logger.remove()

    if enable_console:
        if serialize:
            logger.add(
                sys.stderr,
                level=level,
                serialize=True,
                backtrace=True,
                diagnose=False
            )
        else:
            logger.add(
                sys.stderr,
                level=level,
                format=_text_format,
                colorize=True
            )

    if enable_file:
        log_dir = log_dir or Path("logs")

        try:
            log_dir.mkdir(exist_ok=True, parents=True)
        except PermissionError as e:
            logger.error(f"Cannot create log directory {log_dir}: insufficient permissions")
            raise PermissionError(f"Failed to create log directory {log_dir}: {e}") from e
        except OSError as e:
            logger.error(f"Cannot create log directory {log_dir}: {e}")
            raise OSError(f"Failed to create log directory {log_dir}: {e}") from e

        logger.add(
            log_dir / "fund_ingest_{time}.log",
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            serialize=serialize,
            backtrace=True,
            diagnose=False
        )

        # Provider attempts and fallbacks only, for tracking upstream format drift
        logger.add(
            log_dir / "ingest_events_{time}.log",
            level="INFO",
            rotation=rotation,
            retention=retention,
            compression=compression,
            format=_text_format,
            serialize=serialize,
            filter=lambda record: record["message"] in INGEST_EVENTS
        )

        logger.add(
            log_dir / "errors_{time}.log",
            level="WARNING",
            rotation=rotation,
            retention=retention,
            compression=compression,
            serialize=serialize
        )


def get_logger(name: str) -> Any:
    """
    Get a logger bound to a module name.

    Args:
        name: Module name (use __name__)
    """
    return logger.bind(module=name)


def _plain(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


class IngestLogger:
    """
    Emits the pipeline's structured events with a consistent shape.

    Every provider failure carries instrument, source and cause so upstream
    markup drift can be diagnosed from the logs alone.
    """

    def __init__(self, run_id: Optional[str] = None):
        self.logger = logger
        self.run_id = run_id

    def _base_context(self) -> Dict[str, Any]:
        context = {}
        if self.run_id:
            context["run_id"] = self.run_id
        return context

    def attempt_failed(self, instrument: str, source: str, error: str, **kwargs):
        """Log one failed adapter attempt."""
        context = self._base_context()
        context.update({
            "event": "attempt_failed",
            "instrument": instrument,
            "source": source,
            "error": error,
            **kwargs
        })
        self.logger.warning("attempt_failed", **context)

    def fallback_used(
        self,
        instrument: str,
        price: Decimal,
        currency: str,
        failures: Sequence[str],
        **kwargs
    ):
        """Log that every source failed and the previous value was kept."""
        context = self._base_context()
        context.update({
            "event": "fallback_used",
            "instrument": instrument,
            "price": _plain(price),
            "currency": currency,
            "failures": list(failures),
            **kwargs
        })
        self.logger.warning("fallback_used", **context)

    def instrument_resolved(
        self,
        instrument: str,
        source: str,
        price: Decimal,
        currency: str,
        points: int,
        **kwargs
    ):
        """Log a successful live resolution."""
        context = self._base_context()
        context.update({
            "event": "instrument_resolved",
            "instrument": instrument,
            "source": source,
            "price": _plain(price),
            "currency": currency,
            "points": points,
            **kwargs
        })
        self.logger.info("instrument_resolved", **context)

    def snapshot_written(self, path: str, updated_at: Optional[str], items: int, **kwargs):
        """Log the final atomic write."""
        context = self._base_context()
        context.update({
            "event": "snapshot_written",
            "path": path,
            "updated_at": updated_at,
            "items": items,
            **kwargs
        })
        self.logger.info("snapshot_written", **context)


# NOTE: Logging is NOT initialized automatically on import.
# The entry point calls configure_logging() once at startup (see fund_ingest.cli).
