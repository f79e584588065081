"""structlog configuration.

Learn: Every module just calls structlog.get_logger() and logs dotted
event names ("identity.login_failed"). This module wires the processor
chain once at startup: contextvars (request_id from the middleware),
log level, timestamp, and a redaction step so raw tokens, passwords and
email addresses never reach the log sink in the clear.
"""

import logging
from typing import Any

import structlog

_SENSITIVE_KEYS = ("password", "token", "secret", "authorization")
_IDENTITY_KEYS = ("email", "subject", "owner")


def _mask_address(value: str) -> str:
    """a.person@x.com → a***@x.com. The domain stays for triage."""
    local, at, domain = value.partition("@")
    if not at:
        return local[:1] + "***"
    return f"{local[:1]}***@{domain}"


def _redact_secrets(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Mask secrets (keeping a short prefix) and user addresses."""
    for key, value in event_dict.items():
        if key == "event" or not isinstance(value, str):
            continue
        lowered = key.lower()
        if any(s in lowered for s in _SENSITIVE_KEYS):
            event_dict[key] = value[:6] + "***" if len(value) > 12 else "***"
        elif any(s in lowered for s in _IDENTITY_KEYS):
            event_dict[key] = _mask_address(value)
    return event_dict


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Install the structlog processor chain (idempotent)."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_secrets,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
