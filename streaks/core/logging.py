import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def configure_logging(log_level: str = "INFO", *, json_logs: bool = True) -> None:
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            timestamper,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def streak_log_context(*, user_id: str | None, streak_id: str) -> Iterator[None]:
    with structlog.contextvars.bound_contextvars(user_id=user_id, streak_id=streak_id):
        yield
