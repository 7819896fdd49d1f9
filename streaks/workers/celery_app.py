from celery import Celery
from celery.signals import setup_logging

from streaks.core.config import get_settings
from streaks.core.logging import configure_logging

settings = get_settings()

STREAKS_QUEUE = "q_streaks"

celery_app = Celery(
    "streaks",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "streaks.workers.tasks.streak_recompute",
    ],
)

celery_app.conf.update(
    task_default_queue="q_normal",
    task_routes={"streaks.workers.tasks.streak_recompute.*": {"queue": STREAKS_QUEUE}},
    task_acks_late=True,
    task_soft_time_limit=60,
    task_time_limit=90,
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
)


@setup_logging.connect
def _configure_worker_logging(**_: object) -> None:
    configure_logging(get_settings().log_level)


@celery_app.task(name="streaks.workers.celery_app.ping")
def ping() -> str:
    return "pong"
