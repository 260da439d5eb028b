from __future__ import annotations

import os
import sys
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

if TYPE_CHECKING:
    from loguru import Logger

from loguru import logger

DEFAULT_LOG_DIR = Path(
    os.environ.get(
        "CAPTURE_BRIDGE_LOG_DIR",
        Path.home() / ".local" / "state" / "capture-bridge" / "logs",
    )
)


def _should_log_probe(record) -> bool:
    """Filter per-port probe misses - a full scan emits one per candidate port."""
    message = record["message"].lower()
    tags = record["extra"].get("tags", [])

    if record["level"].no >= logger.level("WARNING").no:
        return True

    if "probe" in tags and "no listener" in message:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _should_log_poll(record) -> bool:
    """Filter per-attempt poll messages - only show in TRACE mode."""
    message = record["message"].lower()
    tags = record["extra"].get("tags", [])

    if "poll" in tags and "waiting" in message:
        return record["level"].no <= logger.level("TRACE").no

    return True


def _combined_filter(record) -> bool:
    """Combined filter for all log suppression rules."""
    return _should_log_probe(record) and _should_log_poll(record)


def setup_logging(
    *,
    debug: bool = False,
    trace: bool = False,
    log_dir: Path | None = None,
    sink: Callable[[str, str], None] | None = None,
    sink_min_level: str | None = None,
) -> Logger:
    """
    Setup multi-tier logging with separate sinks for different log levels.

    Logging Tiers:
    - CRITICAL/ERROR: Failed injections, unreachable devices
    - SUCCESS/INFO: Stage transitions, discovered targets, forwarded ports
    - DEBUG: Every adb and host tool command with its output
    - TRACE: Per-port probe misses and per-attempt poll waits

    Log Files:
    - operations.log: INFO+ events (7 day retention)
    - debug.log: DEBUG+ events when debug is enabled (3 day retention)
    - trace.log: TRACE+ events when trace is enabled (1 day retention)
    - structured.jsonl: Structured JSON logs for analysis (7 day retention)

    Args:
        debug: Enable DEBUG level logging
        trace: Enable TRACE level logging (very verbose)
        log_dir: Custom log directory (defaults to ~/.local/state/capture-bridge/logs)
        sink: Optional callable receiving (message, level name) for embedding hosts
        sink_min_level: Minimum log level forwarded to ``sink``
    """
    logger.remove()
    logger.configure(extra={"job_id": "-", "tags": [], "source": "APP"})

    if trace:
        console_level = "TRACE"
    elif debug:
        console_level = "DEBUG"
    else:
        console_level = "INFO"

    # SINK 1: Console (stderr) - User-facing, filtered
    logger.add(
        sys.stderr,
        level=console_level,
        enqueue=True,
        backtrace=False,
        diagnose=False,
        filter=_combined_filter,
        colorize=True,
        format=(
            "<green>{time:HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[source]: <15}</cyan> | "
            "<blue>{extra[job_id]: <15}</blue> | "
            "{message}"
        ),
    )

    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    # SINK 2: Operations Log - Important events only (INFO+)
    logger.add(
        log_dir / "operations.log",
        level="INFO",
        rotation="5 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        backtrace=False,
        diagnose=False,
        format=(
            "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
            "{level: <8} | "
            "{extra[source]: <15} | "
            "{extra[job_id]: <15} | "
            "{message}"
        ),
    )

    # SINK 3: Debug Log - Every command (DEBUG+ when debug=True)
    if debug or trace:
        logger.add(
            log_dir / "debug.log",
            level="DEBUG",
            rotation="10 MB",
            retention="3 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=True,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{extra[source]: <15} | "
                "{extra[job_id]: <15} | "
                "{extra[tags]} | "
                "{message}"
            ),
        )

    # SINK 4: Trace Log - Ultra-verbose (TRACE only, when trace=True)
    if trace:
        logger.add(
            log_dir / "trace.log",
            level="TRACE",
            rotation="50 MB",
            retention="1 day",
            compression="zip",
            enqueue=True,
            backtrace=False,
            diagnose=False,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{extra[source]: <15} | "
                "{extra[job_id]: <15} | "
                "{message}"
            ),
        )

    # SINK 5: Structured JSON Log - For analysis tools (INFO+)
    logger.add(
        log_dir / "structured.jsonl",
        level="INFO",
        rotation="10 MB",
        retention="7 days",
        compression="zip",
        enqueue=True,
        serialize=True,
        format="{message}",
    )

    # SINK 6: Embedding host callback
    if sink is not None:
        if sink_min_level is None:
            resolved_level = "TRACE" if trace else "DEBUG" if debug else "INFO"
        else:
            resolved_level = sink_min_level.upper()

        def _callback_sink(message) -> None:
            record = message.record
            if record["level"].no >= logger.level(resolved_level).no:
                sink(record["message"], record["level"].name)

        logger.add(_callback_sink, enqueue=True, filter=_combined_filter)

    return logger


def get_logger(
    *,
    job_id: str | None = None,
    tags: Iterable[str] | None = None,
    source: str | None = None,
) -> Logger:
    """
    Get a logger with bound context.

    Args:
        job_id: Job identifier for tracking operations
        tags: Tags for filtering (e.g., ["adb", "probe"])
        source: Source component (usually the module name)

    Returns:
        Logger with bound context
    """
    extras: dict[str, object] = {}
    if job_id is not None:
        extras["job_id"] = job_id
    if tags is not None:
        extras["tags"] = list(tags)
    if source is not None:
        extras["source"] = source
    return logger.bind(**extras)


def new_job_id(operation: str) -> str:
    return f"{operation}-{uuid.uuid4().hex[:8]}"


@contextmanager
def operation_context(operation: str, job_id: str | None = None, **details):
    """
    Context manager for tracking long-running operations with automatic timing.

    Logs operation start, completion, and failure with duration tracking.
    Exceptions are logged and re-raised.

    Args:
        operation: Operation name (e.g., "inject", "launch")
        job_id: Existing job identifier; a fresh one is generated when omitted
        **details: Operation-specific details to log

    Yields:
        Logger bound with job_id and operation context

    Example:
        with operation_context("inject", package="com.example.app") as log:
            log.debug("Pulling package")
    """
    job_id = job_id or new_job_id(operation)

    with logger.contextualize(job_id=job_id, operation=operation, **details):
        start_time = time.time()
        log = logger.bind(source=operation, job_id=job_id, tags=[operation])

        log.info(f"{operation.capitalize()} started", **details)

        try:
            yield log
            duration = time.time() - start_time
            log.success(
                f"{operation.capitalize()} completed", duration_seconds=round(duration, 2)
            )
        except Exception as e:
            duration = time.time() - start_time
            log.error(
                f"{operation.capitalize()} failed",
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise


class LoggerFactory:
    """
    Factory for creating domain-specific loggers with automatic context.
    """

    @staticmethod
    def for_adb(serial: str | None = None) -> Logger:
        """Logger for adb command execution."""
        return logger.bind(source="adb", tags=["adb", "device"], serial=serial or "-")

    @staticmethod
    def for_scanner() -> Logger:
        """Logger for target port scanning."""
        return logger.bind(source="scanner", tags=["scanner", "probe"])

    @staticmethod
    def for_injection(job_id: str | None = None, **details) -> Logger:
        """Logger for capture layer injection jobs."""
        if job_id is None:
            job_id = new_job_id("inject")
        return logger.bind(
            job_id=job_id, source="inject", tags=["inject", "apk"], **details
        )

    @staticmethod
    def for_system() -> Logger:
        """Logger for startup and configuration."""
        return logger.bind(source="system", tags=["system"])


class EventLogger:
    """
    Structured event logger using standardized schemas.
    """

    @staticmethod
    def log_stage_started(log: Logger, stage: str, progress: float, **extra) -> None:
        log.info(
            f"Stage started: {stage}",
            event_type="stage_started",
            stage=stage,
            progress=round(progress, 2),
            **extra,
        )

    @staticmethod
    def log_stage_failed(
        log: Logger, stage: str, kind: str, diagnostic: str, **extra
    ) -> None:
        # Diagnostics carry raw tool output, so they are never format strings.
        log.bind(
            event_type="stage_failed",
            stage=stage,
            error_kind=kind,
            **extra,
        ).error(f"Stage failed: {stage}: {diagnostic}")

    @staticmethod
    def log_port_forwarded(
        log: Logger, serial: str, host_port: int, device_port: int, **extra
    ) -> None:
        log.debug(
            f"Forwarded tcp:{host_port} -> tcp:{device_port} on {serial or 'default device'}",
            event_type="port_forwarded",
            serial=serial,
            host_port=host_port,
            device_port=device_port,
            **extra,
        )

    @staticmethod
    def log_target_found(log: Logger, address: str, port: int, **extra) -> None:
        log.info(
            f"Live target found at {address}:{port}",
            event_type="target_found",
            address=address,
            port=port,
            **extra,
        )
