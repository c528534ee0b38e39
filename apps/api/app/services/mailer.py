from __future__ import annotations

import html
import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import DeliveryError
from app.core.logging import log_structured

RESEND_URL = "https://api.resend.com/emails"
SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"
SEND_INVITE_TASK = "worker.tasks.send_invite_email"


@dataclass(frozen=True)
class InviteEmail:
    to: str
    family_name: str
    code: str
    role: str
    join_url: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    text: str
    html: str


def build_join_url() -> str:
    return f"{settings.app_base_url.rstrip('/')}/#/family-settings"


def render_invite_email(invite: InviteEmail) -> RenderedEmail:
    subject = f"Join {invite.family_name} on the family calendar"
    text = "\n".join(
        [
            f"You've been invited to join {invite.family_name} as a {invite.role}.",
            "",
            f"Your invite code: {invite.code}",
            "",
            "How to join:",
            f"1. Visit: {invite.join_url}",
            "2. Sign in or create an account",
            "3. Go to Family Settings",
            f"4. Enter your invite code: {invite.code}",
        ]
    )
    family = html.escape(invite.family_name)
    body = (
        "<html><body>"
        f"<p>You've been invited to join <strong>{family}</strong> as a {html.escape(invite.role)}.</p>"
        f'<p style="font-size:28px;font-family:monospace;letter-spacing:4px">{html.escape(invite.code)}</p>'
        f'<p><a href="{html.escape(invite.join_url)}">Join {family}</a></p>'
        "</body></html>"
    )
    return RenderedEmail(subject=subject, text=text, html=body)


def _provider_request(invite: InviteEmail, rendered: RenderedEmail) -> tuple[str, dict[str, str], dict[str, Any]]:
    if settings.email_provider == "sendgrid":
        if not settings.sendgrid_api_key:
            raise DeliveryError("SENDGRID_API_KEY is not configured")
        return (
            SENDGRID_URL,
            {"Authorization": f"Bearer {settings.sendgrid_api_key}"},
            {
                "personalizations": [{"to": [{"email": invite.to}]}],
                "from": {"email": settings.email_from_address},
                "subject": rendered.subject,
                "content": [
                    {"type": "text/plain", "value": rendered.text},
                    {"type": "text/html", "value": rendered.html},
                ],
            },
        )
    if not settings.resend_api_key:
        raise DeliveryError("RESEND_API_KEY is not configured")
    return (
        RESEND_URL,
        {"Authorization": f"Bearer {settings.resend_api_key}"},
        {
            "from": settings.email_from_address,
            "to": invite.to,
            "subject": rendered.subject,
            "html": rendered.html,
            "text": rendered.text,
        },
    )


def send_invite_email(invite: InviteEmail, client: httpx.Client | None = None) -> dict[str, Any]:
    """Deliver the invite through the configured provider. Raises DeliveryError."""
    rendered = render_invite_email(invite)
    url, headers, body = _provider_request(invite, rendered)
    owns_client = client is None
    client = client or httpx.Client(timeout=settings.email_timeout_seconds)
    try:
        resp = client.post(url, json=body, headers=headers)
    except httpx.HTTPError as exc:
        raise DeliveryError(f"email provider unreachable: {exc}") from exc
    finally:
        if owns_client:
            client.close()

    if resp.status_code >= 400:
        log_structured(
            logging.WARNING,
            "invite_email_failed",
            provider=settings.email_provider,
            status_code=resp.status_code,
            recipient_email=invite.to,
        )
        raise DeliveryError("email provider rejected the message", {"status_code": resp.status_code})
    return {"provider": settings.email_provider, "status_code": resp.status_code}


def dispatch_invite_email(invite: InviteEmail) -> dict[str, Any]:
    mode = settings.email_delivery
    if mode == "inline":
        return {"mode": mode, **send_invite_email(invite)}
    if mode == "celery":
        from worker.celery_app import celery_app

        result = celery_app.send_task(SEND_INVITE_TASK, kwargs={"invite": asdict(invite)})
        return {"mode": mode, "task_id": result.id}

    log_structured(
        logging.INFO,
        "invite_email_logged",
        recipient_email=invite.to,
        family_name=invite.family_name,
        role=invite.role,
        join_url=invite.join_url,
    )
    return {"mode": "log"}
