from celery import Celery

from snbt.config import settings

celery_app = Celery(
    "snbt_worker",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND or None,
    include=["snbt.worker.tasks"],
)

celery_app.conf.update(
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_routes={
        'aggregate_simulation_result': {'queue': 'aggregation'}
    }
)
