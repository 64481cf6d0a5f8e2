"""Structured logging for PlantLife, built on structlog.

Every line carries the service name, version and product skin. Request
lines add ``request_id`` and ``client_ip`` from the middleware, plus
``user_id`` once authentication has resolved the caller. Phone numbers are
account identifiers here, so they are masked before rendering.
"""

import logging
import sys
from typing import Any

import structlog

from plantlife.config import Settings

REQUEST_CONTEXT_KEYS = ("request_id", "user_id", "client_ip")
PHONE_KEYS = ("phone",)


def mask_phone_numbers(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor: keep only the last four digits of phone fields."""
    for key in PHONE_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and value:
            event_dict[key] = "*" * max(len(value) - 4, 0) + value[-4:]
    return event_dict


def configure_logging(settings: Settings) -> None:
    """Configure structlog and the stdlib root logger from settings."""
    level = getattr(logging, settings.log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_phone_numbers,
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.log_json:
        renderer: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        service=settings.service_name,
        version=settings.service_version,
        skin=settings.product_skin,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_request_context(request_id: str, client_ip: str | None = None) -> None:
    """Bind the per-request keys; called by the request middleware."""
    context = {"request_id": request_id}
    if client_ip:
        context["client_ip"] = client_ip
    structlog.contextvars.bind_contextvars(**context)


def bind_user_context(user_id: Any) -> None:
    """Attach the authenticated caller to the rest of the request's log lines."""
    structlog.contextvars.bind_contextvars(user_id=str(user_id))


def clear_request_context() -> None:
    """Drop request context (call at end of request); the service binding stays."""
    structlog.contextvars.unbind_contextvars(*REQUEST_CONTEXT_KEYS)
