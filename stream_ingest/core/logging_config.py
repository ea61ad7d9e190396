"""Logging setup for the ingest pipeline.

Console output goes through rich; an optional plain-text file receives
everything at DEBUG. Modules log via ``logging.getLogger(__name__)`` and
inherit the handlers installed on the ``stream_ingest`` logger.
"""

import logging
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "stream_ingest"
FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"

console = Console(stderr=True)


def _file_handler(log_file: Path | str) -> logging.Handler:
    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    rich_tracebacks: bool = True,
) -> logging.Logger:
    """
    Install console (and optionally file) handlers on the package logger.

    Safe to call more than once; previous handlers are replaced.

    Args:
        level: Console level name, e.g. INFO or DEBUG
        log_file: Also write DEBUG output here
        rich_tracebacks: Render exceptions with rich

    Returns:
        The ``stream_ingest`` logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.handlers.clear()
    package_logger.setLevel(logging.DEBUG if log_file else numeric_level)

    console_handler = RichHandler(
        console=console,
        level=numeric_level,
        rich_tracebacks=rich_tracebacks,
        tracebacks_show_locals=numeric_level <= logging.DEBUG,
        markup=True,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    package_logger.addHandler(console_handler)

    if log_file:
        package_logger.addHandler(_file_handler(log_file))

    package_logger.propagate = False
    package_logger.debug("📝 Logging ready (console=%s, file=%s)", level.upper(), log_file)
    return package_logger


def _context(**fields: Any) -> dict[str, Any]:
    """Drop empty fields so log records only carry what is known."""
    return {key: value for key, value in fields.items() if value is not None and value != ""}


def log_api_request(
    logger_instance: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str | None = None,
) -> None:
    """One line per HTTP request; 4xx and 5xx are logged as warnings."""
    extra = _context(
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round(duration_ms, 2),
        client_ip=client_ip,
    )
    level = logging.WARNING if status_code >= 400 else logging.INFO
    logger_instance.log(
        level, "%s %s -> %s (%.1fms)", method, path, status_code, duration_ms, extra=extra
    )


def log_ingest_event(
    logger_instance: logging.Logger,
    source: str,
    event: str,
    method: str | None = None,
    uid: str | None = None,
    error: str | None = None,
) -> None:
    """
    Record a step of an ingest.

    Args:
        source: Source URL or file label
        event: started, fallback, completed or failed
        method: copy, stream-through or direct-browser
        uid: Store identifier once the store has assigned one
        error: Failure reason
    """
    extra = _context(source=source, event=event, method=method, uid=uid, error=error)

    if event == "failed":
        logger_instance.error("❌ Ingest of %s failed: %s", source, error, extra=extra)
    elif event == "fallback":
        logger_instance.warning("↪️ Copy refused for %s, streaming through", source, extra=extra)
    elif event == "completed":
        logger_instance.info("✅ %s stored as %s via %s", source, uid, method, extra=extra)
    else:
        logger_instance.info("📥 Ingest %s: %s", event, source, extra=extra)


def log_analysis_event(
    logger_instance: logging.Logger,
    uid: str,
    event: str,
    duration_seconds: float | None = None,
    keyframes: int | None = None,
    error: str | None = None,
) -> None:
    """Record the start, end or failure of a metadata synthesis run."""
    extra = _context(
        uid=uid,
        event=event,
        duration_seconds=duration_seconds,
        keyframes=keyframes,
        error=error,
    )

    if event == "failed":
        logger_instance.error("❌ Analysis of %s failed: %s", uid, error, extra=extra)
    elif event == "completed":
        logger_instance.info(
            "✅ Analysis of %s done in %ss with %s keyframes",
            uid,
            duration_seconds,
            keyframes,
            extra=extra,
        )
    else:
        logger_instance.info("🔎 Analysis %s: %s", event, uid, extra=extra)
