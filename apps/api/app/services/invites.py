from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from app.core.logging import log_structured
from app.models.entities import Family, FamilyMembership, InviteCode, RoleEnum, as_utc, utcnow
from app.services.access import require_access
from app.services.mailer import InviteEmail, build_join_url, dispatch_invite_email
from app.services.memberships import find_membership, insert_membership
from app.services.policy import Action, ResourceKind

CODE_ALPHABET = string.ascii_uppercase + string.digits

STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_REVOKED = "revoked"


@dataclass(frozen=True)
class Redemption:
    membership: FamilyMembership
    created: bool


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def generate_code(length: int | None = None) -> str:
    length = length or settings.invite_code_length
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def default_expiry(now: datetime | None = None) -> datetime | None:
    if settings.invite_code_ttl_days <= 0:
        return None
    return (now or utcnow()) + timedelta(days=settings.invite_code_ttl_days)


def code_status(invite: InviteCode, now: datetime | None = None) -> str:
    now = now or utcnow()
    if invite.revoked_at is not None:
        return STATUS_REVOKED
    expires_at = as_utc(invite.expires_at)
    if expires_at is not None and expires_at <= now:
        return STATUS_EXPIRED
    return STATUS_ACTIVE


def find_code(db: Session, code: str) -> InviteCode | None:
    return db.execute(select(InviteCode).where(InviteCode.code == normalize_code(code))).scalar_one_or_none()


def _code_exists(db: Session, code: str) -> bool:
    return db.execute(select(InviteCode.id).where(InviteCode.code == code)).first() is not None


def create_code(
    db: Session,
    *,
    family_id: int,
    created_by: str,
    role: RoleEnum,
    expires_at: datetime | None,
    generator=None,
) -> InviteCode:
    """
    Persist a fresh invite code, retrying on collision.

    Codes are never reused, so the uniqueness check covers expired and revoked
    codes too. Each attempt runs in a SAVEPOINT so a unique-index violation
    from a concurrent issuer only discards that attempt.
    """
    if role == RoleEnum.owner:
        raise ValidationError("invite codes cannot grant the owner role")

    generator = generator or generate_code
    attempts = settings.invite_code_max_attempts
    for attempt in range(1, attempts + 1):
        candidate = generator()
        if _code_exists(db, candidate):
            log_structured(logging.INFO, "invite_code_collision", family_id=family_id, attempt=attempt)
            continue
        invite = InviteCode(
            code=candidate,
            family_id=family_id,
            role=role,
            created_by=created_by,
            expires_at=expires_at,
        )
        try:
            with db.begin_nested():
                db.add(invite)
        except IntegrityError:
            log_structured(logging.INFO, "invite_code_collision", family_id=family_id, attempt=attempt)
            continue
        return invite

    raise ConflictError(f"could not generate a unique invite code after {attempts} attempts")


def issue(
    db: Session,
    family_id: int,
    issuer_user_id: str,
    role: RoleEnum | str = RoleEnum.member,
    expires_at: datetime | None = None,
    *,
    generator=None,
) -> InviteCode:
    require_access(db, issuer_user_id, family_id, ResourceKind.family, Action.manage_members)
    try:
        role = RoleEnum(role)
    except ValueError:
        raise ValidationError(f"unknown role: {role}") from None

    now = utcnow()
    expires_at = as_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        raise ValidationError("expires_at must be in the future")
    if expires_at is None:
        expires_at = default_expiry(now)

    invite = create_code(
        db,
        family_id=family_id,
        created_by=issuer_user_id,
        role=role,
        expires_at=expires_at,
        generator=generator,
    )
    db.commit()
    db.refresh(invite)
    log_structured(
        logging.INFO,
        "invite_issued",
        family_id=family_id,
        issuer=issuer_user_id,
        role=role.value,
        invite_id=invite.id,
    )
    return invite


def redeem(db: Session, code: str, user_id: str, display_name: str | None = None) -> Redemption:
    invite = find_code(db, code)
    if invite is None:
        raise NotFoundError("invalid invite code")

    status = code_status(invite)
    if status != STATUS_ACTIVE:
        raise ExpiredError(f"invite code {status}")

    existing = find_membership(db, user_id, invite.family_id)
    if existing is not None:
        return Redemption(membership=existing, created=False)

    try:
        with db.begin_nested():
            membership = insert_membership(
                db,
                family_id=invite.family_id,
                user_id=user_id,
                display_name=display_name or user_id,
                role=invite.role,
            )
    except IntegrityError:
        # Lost a race with a concurrent redeem for the same user.
        existing = find_membership(db, user_id, invite.family_id)
        if existing is None:
            raise
        db.commit()
        return Redemption(membership=existing, created=False)

    invite.redeemed_count = (invite.redeemed_count or 0) + 1
    invite.last_redeemed_at = utcnow()
    db.commit()
    db.refresh(membership)
    log_structured(
        logging.INFO,
        "invite_redeemed",
        family_id=invite.family_id,
        user_id=user_id,
        role=invite.role.value,
        invite_id=invite.id,
    )
    return Redemption(membership=membership, created=True)


def revoke(db: Session, family_id: int, code: str, requester_user_id: str) -> InviteCode:
    require_access(db, requester_user_id, family_id, ResourceKind.family, Action.manage_members)
    invite = find_code(db, code)
    if invite is None or invite.family_id != family_id:
        raise NotFoundError("invite code not found")
    if invite.revoked_at is None:
        invite.revoked_at = utcnow()
        db.commit()
        db.refresh(invite)
        log_structured(logging.INFO, "invite_revoked", family_id=family_id, user_id=requester_user_id, invite_id=invite.id)
    return invite


def list_codes(db: Session, family_id: int, requester_user_id: str) -> list[InviteCode]:
    require_access(db, requester_user_id, family_id, ResourceKind.family, Action.manage_members)
    return list(
        db.execute(
            select(InviteCode)
            .where(InviteCode.family_id == family_id)
            .order_by(InviteCode.created_at.desc(), InviteCode.id.desc())
        )
        .scalars()
        .all()
    )


def forward(
    db: Session,
    family_id: int,
    sender_user_id: str,
    email: str,
    role: RoleEnum | str = RoleEnum.caregiver,
    code: str | None = None,
) -> InviteCode:
    """
    Email a human-readable invite. Grants nothing by itself; access only
    follows when the recipient redeems the code.
    """
    require_access(db, sender_user_id, family_id, ResourceKind.family, Action.manage_members)
    try:
        role = RoleEnum(role)
    except ValueError:
        raise ValidationError(f"unknown role: {role}") from None
    if role == RoleEnum.owner:
        raise ValidationError("invite codes cannot grant the owner role")

    fresh = not code
    if not fresh:
        invite = find_code(db, code)
        if invite is None or invite.family_id != family_id:
            raise NotFoundError("invite code not found")
        if code_status(invite) != STATUS_ACTIVE:
            raise ExpiredError(f"invite code {code_status(invite)}")
        if invite.role != role:
            raise ValidationError("invite code grants a different role")
    else:
        # Not committed until the email is handed off.
        invite = create_code(
            db,
            family_id=family_id,
            created_by=sender_user_id,
            role=role,
            expires_at=default_expiry(),
        )

    family = db.get(Family, family_id)
    sent_code = invite.code
    try:
        dispatch_invite_email(
            InviteEmail(
                to=email,
                family_name=family.name,
                code=sent_code,
                role=invite.role.value,
                join_url=build_join_url(),
            )
        )
    except Exception:
        db.rollback()
        if fresh:
            _discard_unsent(db, sent_code)
        raise

    if fresh:
        db.commit()
        db.refresh(invite)
        log_structured(
            logging.INFO,
            "invite_issued",
            family_id=family_id,
            issuer=sender_user_id,
            role=role.value,
            invite_id=invite.id,
        )
    log_structured(
        logging.INFO,
        "invite_forwarded",
        family_id=family_id,
        sender=sender_user_id,
        recipient_email=email,
        role=invite.role.value,
        invite_id=invite.id,
    )
    return invite


def _discard_unsent(db: Session, code: str) -> None:
    # A released SAVEPOINT can outlive the rollback on some drivers.
    stale = find_code(db, code)
    if stale is None or stale.revoked_at is not None:
        return
    stale.revoked_at = utcnow()
    db.commit()
    log_structured(logging.WARNING, "invite_discarded_after_failed_delivery", family_id=stale.family_id, invite_id=stale.id)
