from __future__ import annotations

from dataclasses import dataclass

from fastapi import Header, HTTPException

from app.core.config import settings


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    display_name: str
    email: str | None = None


def get_auth_context(
    x_forwarded_user: str | None = Header(default=None, alias="X-Forwarded-User"),
    x_forwarded_name: str | None = Header(default=None, alias="X-Forwarded-Name"),
    x_forwarded_email: str | None = Header(default=None, alias="X-Forwarded-Email"),
    x_dev_user: str | None = Header(default=None, alias="X-Dev-User"),
    x_dev_name: str | None = Header(default=None, alias="X-Dev-Name"),
) -> AuthContext:
    """
    Auth boundary.

    In prod, requests arrive behind a forward-auth proxy which injects the
    authenticated user id as X-Forwarded-User. In dev/tests the X-Dev-User
    header is accepted as well. There is no anonymous mode: every
    family-scoped handler needs a caller identity for the scope guard.
    """
    user_id = x_forwarded_user
    name = x_forwarded_name
    if not user_id and settings.auth_mode == "dev":
        user_id = x_dev_user
        name = name or x_dev_name

    user_id = (user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="authentication required")

    email = x_forwarded_email.strip().lower() if x_forwarded_email else None
    display_name = (name or "").strip() or user_id
    return AuthContext(user_id=user_id, display_name=display_name, email=email)
