"""
Logging for the bot service and CLI.

Everything goes through structlog's ``ProcessorFormatter``, so records from
plain ``logging.getLogger(__name__)`` loggers (engine, providers, submitter)
carry the same ``request_id``/``chat_id`` context as structlog loggers and
render in one format: JSON lines for services, colored text on a terminal.
"""

import logging
import sys
from typing import List, Optional

import structlog

from .config import settings


SERVICE_NAME = "plutus-move-bot"

# Chatty at INFO: one line per HTTP request or connection
NOISY_LOGGERS = ("uvicorn.access", "httpcore", "httpx")


def _add_service(logger, method_name, event_dict):
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _use_json(log_format: str) -> bool:
    fmt = log_format.lower()
    if fmt == "auto":
        return not sys.stdout.isatty()
    return fmt == "json"


def setup_logging(log_level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structlog and route the stdlib root logger through it.

    Args:
        log_level: Override level (default: settings.log_level)
        log_format: ``json``, ``console`` or ``auto`` (default: settings.log_format)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    as_json = _use_json(log_format or settings.log_format)

    pre_chain: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if as_json:
        pre_chain.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
