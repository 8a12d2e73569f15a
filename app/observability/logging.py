"""
Structured Logging with Structlog.

Every entry is one JSON object (or a coloured console line in development):

    {"event": "signed_url_issued", "level": "info", "logger": "app.services.access_policy",
     "timestamp": "...", "service": "membership-gate", "network_id": 8453,
     "request_id": "...", "resource": "https://cdn.example/issue-42.pdf", ...}

Secret material never reaches the renderer: values under the keys in
REDACTED_KEYS are masked.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

REDACTED_KEYS = frozenset({"private_key", "secret", "signature", "policy", "pem"})


def add_service_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp entries with the deployment they came from."""
    event_dict.setdefault("service", settings.service_name)
    event_dict.setdefault("version", settings.api_version)
    event_dict.setdefault("network_id", settings.network_id)
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask signing material passed as log context by mistake."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def _renderer() -> Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=True)


def setup_logging() -> None:
    """Route structlog through stdlib logging on stdout at the configured level."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_service_fields,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _renderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for a module, e.g. get_logger(__name__)."""
    return structlog.get_logger(name)  # type: ignore[no-any-return]


@contextmanager
def log_context(**context: Any) -> Iterator[None]:
    """
    Bind fields to every entry logged inside the block (request_id, wallet, ...).

    Safe across concurrent requests: bindings live in contextvars.
    """
    with structlog.contextvars.bound_contextvars(**context):
        yield
