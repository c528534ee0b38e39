from celery import Celery

from app.core.config import settings

celery_app = Celery(
    "family_calendar_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["worker.tasks"],
)

celery_app.conf.task_routes = {
    "worker.tasks.send_invite_email": {"queue": "email"},
}
celery_app.conf.timezone = "UTC"
