import logging
import os
import sys

import sentry_sdk
import structlog
from asgi_correlation_id.context import correlation_id
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog.contextvars import bind_contextvars, merge_contextvars, unbind_contextvars

SERVICE_NAME = "active-session-service"


def add_service_and_env(logger, method_name, event_dict):
    event_dict["service"] = os.getenv("SERVICE_NAME", SERVICE_NAME)
    event_dict["env"] = os.getenv("APP_ENV", "local")
    return event_dict


def add_correlation_id(logger, method_name, event_dict):
    cid = correlation_id.get(None)
    if cid is not None:
        event_dict["correlation_id"] = cid
    return event_dict


def tag_sentry_scope(logger, method_name, event_dict):
    for key in ("correlation_id", "session_id"):
        value = event_dict.get(key)
        if value is None:
            continue
        try:
            sentry_sdk.set_tag(key, str(value))
        except Exception:
            pass
    return event_dict


def bind_session(session_id: int | None) -> None:
    """Attach the active session id to every log line emitted afterwards."""
    if session_id is None:
        unbind_contextvars("session_id")
    else:
        bind_contextvars(session_id=session_id)


def configure_logging() -> None:
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    app_env = os.getenv("APP_ENV", "local")
    is_dev = app_env in {"local", "dev"}

    if os.getenv("SENTRY_DSN"):
        sentry_sdk.init(
            dsn=os.getenv("SENTRY_DSN"),
            environment=app_env,
            integrations=[
                FastApiIntegration(),
                HttpxIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
            send_default_pii=False,
        )
        sentry_sdk.set_tag("service", os.getenv("SERVICE_NAME", SERVICE_NAME))

    shared_processors = [
        merge_contextvars,
        add_service_and_env,
        add_correlation_id,
        tag_sentry_scope,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer = structlog.dev.ConsoleRenderer() if is_dev else structlog.processors.JSONRenderer()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
        force=True,
    )

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
