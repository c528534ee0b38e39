from app.core.errors import DeliveryError
from app.services.mailer import InviteEmail, send_invite_email as deliver
from worker.celery_app import celery_app


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def send_invite_email(self, invite: dict):
    message = InviteEmail(**invite)
    try:
        result = deliver(message)
    except DeliveryError as exc:
        status_code = (exc.details or {}).get("status_code")
        # 4xx means the provider refused the message itself; retrying won't help.
        if status_code is not None and 400 <= status_code < 500:
            return {"job": "send_invite_email", "status": "error", "error": exc.message}
        raise self.retry(exc=exc)
    return {"job": "send_invite_email", "status": "ok", "result": result}
