"""
Logging setup for the transfer service.

structlog renders through stdlib logging, so modules logging via
logging.getLogger(__name__) and the structured pipeline events end up in
the same stream.
"""

import logging
import sys
from typing import Any, List

import structlog

# Third-party loggers that flood DEBUG output
_QUIET_LOGGERS = ("botocore", "boto3", "s3transfer", "urllib3", "aiohttp.access")

# Event name suffix -> level
_EVENT_LEVELS = (
    ("_failed", logging.ERROR),
    ("_error", logging.ERROR),
    ("_warning", logging.WARNING),
)


def _renderers(json_logs: bool) -> List[Any]:
    if json_logs:
        return [
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.dev.ConsoleRenderer(),
    ]


def setup_transfer_logger(
    name: str = "fetchvault", level: str = "INFO", json_logs: bool = True
) -> structlog.stdlib.BoundLogger:
    """
    Configure stdlib logging and structlog for an entry point.

    Args:
        name: Name of the returned logger
        level: DEBUG, INFO, WARNING or ERROR
        json_logs: JSON lines when True, console rendering otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    logging.getLogger().setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            *_renderers(json_logs),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    for noisy in _QUIET_LOGGERS:
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))

    return structlog.get_logger(name)


def get_transfer_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def log_transfer_event(logger: Any, event_type: str, download_id: str, **fields: Any) -> None:
    """Emit one pipeline event; *_failed and *_error events log at ERROR."""
    level = next((lvl for suffix, lvl in _EVENT_LEVELS if event_type.endswith(suffix)), logging.INFO)
    logger.log(level, event_type, download_id=download_id, **fields)
