"""
Celery Application Configuration
Queue-based processing of assessment runs
"""

from celery import Celery
from kombu import Queue, Exchange

from visibility_engine.config import get_settings

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "visibility_engine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "visibility_engine.workers.tasks.assessment_tasks",
    ]
)

# Celery configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Result backend settings
    result_expires=86400,  # 24 hours
    task_track_started=True,

    # Task execution settings
    task_acks_late=True,  # Acknowledge after task completion
    task_reject_on_worker_lost=True,
    task_time_limit=1800,  # 100 questions with retries can take a while
    task_soft_time_limit=1680,

    # Worker settings
    worker_prefetch_multiplier=1,  # Fair distribution
    worker_concurrency=2,

    # Queue configuration
    task_queues=(
        Queue("default", Exchange("default"), routing_key="default"),
        Queue("assessments", Exchange("assessments"), routing_key="assessment"),
    ),

    task_default_queue="default",
    task_default_exchange="default",
    task_default_routing_key="default",

    # Route tasks to appropriate queues
    task_routes={
        "visibility_engine.workers.tasks.assessment_tasks.*": {"queue": "assessments"},
    },
)
