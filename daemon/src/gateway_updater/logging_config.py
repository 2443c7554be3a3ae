"""
Gateway Updater Logging Configuration

structlog is routed through the standard library so that an application
embedding the updater keeps control of handlers. When nothing has configured
structlog yet, the updater installs its own console/JSON setup. Each update
can additionally be written to a JSON log file on disk.
"""
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import structlog
from pythonjsonlogger import jsonlogger

# Logger every updater module logs under
UPDATER_LOGGER = "gateway_updater"


@dataclass
class _OpenUpdateLog:
    handler: logging.Handler
    previous_level: int
    users: int = 0


# Update log handlers currently attached, by file path
_update_logs: Dict[str, _OpenUpdateLog] = {}


def build_processors(json_logs: bool) -> List[Any]:
    """structlog processor chain ending in a JSON or console renderer"""
    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.extend([structlog.processors.format_exc_info, structlog.processors.JSONRenderer()])
    else:
        processors.extend([structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer(colors=True)])
    return processors


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """
    Configure structlog and stdlib logging for the updater

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output JSON formatted logs. If False, use colored console output.
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)
    logging.getLogger(UPDATER_LOGGER).setLevel(numeric_level)

    structlog.configure(
        processors=build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Subprocess transports log at DEBUG
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def configure_logging(settings: Any) -> bool:
    """
    Apply ``settings`` unless the host application already configured structlog

    Returns:
        True if this call configured logging
    """
    if structlog.is_configured():
        return False
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)
    return True


def get_file_handler(
    log_file: str, log_level: str = "INFO", json_format: bool = True
) -> logging.FileHandler:
    """
    Create a file handler for the update log

    Args:
        log_file: Path to log file (appended to)
        log_level: Minimum log level
        json_format: If True, one JSON object per line

    Returns:
        Configured file handler
    """
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    if json_format:
        formatter = jsonlogger.JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    return handler


@contextmanager
def update_log(log_file: Optional[str], log_level: str = "INFO") -> Iterator[Optional[logging.Handler]]:
    """
    Write updater records to ``log_file`` for the duration of the block

    The handler is attached to the ``gateway_updater`` logger only, so host
    application records never end up in the update log. No-op when
    ``log_file`` is None.
    """
    if not log_file:
        yield None
        return

    # Overlapping updates share one handler per file
    entry = _update_logs.get(log_file)
    if entry is None:
        handler = get_file_handler(log_file, log_level)
        updater_logger = logging.getLogger(UPDATER_LOGGER)
        entry = _update_logs[log_file] = _OpenUpdateLog(handler, updater_logger.level)
        if updater_logger.getEffectiveLevel() > handler.level:
            updater_logger.setLevel(handler.level)
        updater_logger.addHandler(handler)
    entry.users += 1
    try:
        yield entry.handler
    finally:
        entry.users -= 1
        if entry.users == 0:
            del _update_logs[log_file]
            updater_logger = logging.getLogger(UPDATER_LOGGER)
            updater_logger.removeHandler(entry.handler)
            updater_logger.setLevel(entry.previous_level)
            entry.handler.close()
