"""
Celery application for background site crawls.

Queues:
- crawl_queue: one site crawl per task; network-bound, each task runs its own event loop
- default:     anything not routed explicitly

Sizing: a crawl holds up to max_pages parsed documents in memory until it is
aggregated, so keep crawl workers at a low prefetch and recycle them.
"""

from celery import Celery
from celery.signals import after_setup_logger, worker_ready
from kombu import Exchange, Queue

from sitecrawl.core.config import get_settings

settings = get_settings()

CRAWL_QUEUE = "crawl_queue"
DEFAULT_QUEUE = "default"

celery_app = Celery(
    "sitecrawl",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["sitecrawl.workers.crawl_tasks"],
)

# ─────────────────────────────────────────────
# Queues and routing
# ─────────────────────────────────────────────

celery_app.conf.task_queues = (
    Queue(DEFAULT_QUEUE, Exchange(DEFAULT_QUEUE, type="direct"), routing_key=DEFAULT_QUEUE),
    Queue(CRAWL_QUEUE, Exchange("crawl", type="direct"), routing_key="crawl"),
)
celery_app.conf.task_default_queue = DEFAULT_QUEUE
celery_app.conf.task_default_exchange = DEFAULT_QUEUE
celery_app.conf.task_default_routing_key = DEFAULT_QUEUE
celery_app.conf.task_routes = {"sitecrawl.workers.crawl_tasks.*": {"queue": CRAWL_QUEUE}}

# ─────────────────────────────────────────────
# Task execution
# ─────────────────────────────────────────────

celery_app.conf.update(
    # Crawl results are plain JSON (AggregatedSiteEvidence without page markup)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,

    # Crawls are idempotent; a lost worker's task is redelivered and rerun
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=50,

    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
    task_max_retries=settings.CELERY_MAX_RETRIES,

    # Callers poll by task id; STARTED distinguishes running from queued
    task_track_started=True,
    result_expires=86400,

    worker_send_task_events=True,
    task_send_sent_event=True,
)


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    import structlog
    structlog.get_logger("celery.worker").info(
        "Crawl worker ready", hostname=sender.hostname, queues=[CRAWL_QUEUE, DEFAULT_QUEUE]
    )


@after_setup_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    from sitecrawl.core.logging import configure_logging
    configure_logging()
