from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, ValidationError
from app.core.logging import log_structured
from app.models.entities import Family, FamilyMembership, InviteCode, RoleEnum
from app.services.access import require_access
from app.services.invites import create_code, default_expiry
from app.services.memberships import delete_membership, find_membership, insert_membership
from app.services.policy import Action, ResourceKind
from app.services.purge import purge_family


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("family name must not be empty")
    if len(cleaned) > 255:
        raise ValidationError("family name must be at most 255 characters")
    return cleaned


def create_family(
    db: Session,
    owner_user_id: str,
    owner_display_name: str,
    name: str,
) -> tuple[Family, FamilyMembership, InviteCode]:
    """Create a family, its owner membership and a default member invite in one transaction."""
    family = Family(name=_clean_name(name), created_by=owner_user_id)
    try:
        db.add(family)
        db.flush()
        owner = insert_membership(
            db,
            family_id=family.id,
            user_id=owner_user_id,
            display_name=owner_display_name or owner_user_id,
            role=RoleEnum.owner,
        )
        invite = create_code(
            db,
            family_id=family.id,
            created_by=owner_user_id,
            role=RoleEnum.member,
            expires_at=default_expiry(),
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(family)
    db.refresh(owner)
    db.refresh(invite)
    log_structured(logging.INFO, "family_created", family_id=family.id, owner=owner_user_id)
    return family, owner, invite


def rename_family(db: Session, family_id: int, requester_user_id: str, name: str) -> Family:
    require_access(db, requester_user_id, family_id, ResourceKind.family, Action.update)
    family = db.get(Family, family_id)
    family.name = _clean_name(name)
    db.commit()
    db.refresh(family)
    log_structured(logging.INFO, "family_renamed", family_id=family_id, user_id=requester_user_id)
    return family


def delete_family(db: Session, family_id: int, requester_user_id: str) -> dict[str, int]:
    """
    Owner-only cascading delete. All-or-nothing: any failure rolls the whole
    purge back and re-raises.
    """
    require_access(db, requester_user_id, family_id, ResourceKind.family, Action.delete)
    try:
        counts = purge_family(db, family_id)
        db.commit()
    except Exception:
        db.rollback()
        log_structured(logging.ERROR, "family_delete_failed", family_id=family_id, user_id=requester_user_id)
        raise
    log_structured(logging.INFO, "family_deleted", family_id=family_id, user_id=requester_user_id, deleted=counts)
    return counts


def leave_family(db: Session, family_id: int, requester_user_id: str) -> None:
    membership = find_membership(db, requester_user_id, family_id)
    if membership is None:
        raise ForbiddenError("forbidden")
    if membership.role == RoleEnum.owner:
        # No ownership transfer: owners delete the family instead.
        raise ForbiddenError("owner cannot leave the family; delete it instead")

    role = membership.role.value
    delete_membership(db, membership)
    db.commit()
    log_structured(logging.INFO, "family_left", family_id=family_id, user_id=requester_user_id, role=role)
