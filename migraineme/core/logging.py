"""Structured logging for the API and the background workers.

Events are emitted through structlog. Session secrets never reach the
output: any event key that carries a Supabase token, key or password is
masked before rendering.
"""

import logging
import sys
from typing import Any, Optional

import structlog

REDACTED = "***"

SECRET_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "token",
        "authorization",
        "apikey",
        "api_key",
        "service_role_key",
        "password",
    }
)

# Chatty libraries under every Supabase, USDA and weather request
QUIET_LOGGERS = ("httpx", "httpcore", "alembic")


def redact_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values of secret-bearing keys, including one level of nested dicts."""
    for key, value in list(event_dict.items()):
        if key.lower() in SECRET_KEYS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if k.lower() in SECRET_KEYS and v else v for k, v in value.items()
            }
    return event_dict


def service_context(environment: str):
    """Processor stamping every event with the service name and environment."""

    def _add(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", "migraineme")
        event_dict.setdefault("environment", environment)
        return event_dict

    return _add


def resolve_level(level: Optional[str], debug: bool) -> int:
    if debug:
        return logging.DEBUG
    resolved = logging.getLevelName((level or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(debug: bool = False, level: Optional[str] = None, environment: str = "development") -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        debug: Colored console output at DEBUG. Otherwise JSON lines.
        level: Level name used when not in debug, e.g. ``"WARNING"``.
        environment: Deployment environment stamped on every event.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        service_context(environment),
        redact_secrets,
    ]
    if debug:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors += [
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    log_level = resolve_level(level, debug)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
