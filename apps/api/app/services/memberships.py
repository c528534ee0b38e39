from __future__ import annotations

from sqlalchemy import case, select
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.entities import Family, FamilyMembership, RoleEnum


def find_membership(db: Session, user_id: str, family_id: int) -> FamilyMembership | None:
    return db.execute(
        select(FamilyMembership).where(
            FamilyMembership.family_id == family_id,
            FamilyMembership.user_id == user_id,
        )
    ).scalar_one_or_none()


def get_membership(db: Session, user_id: str, family_id: int) -> FamilyMembership:
    membership = find_membership(db, user_id, family_id)
    if membership is None:
        raise NotFoundError("membership not found")
    return membership


def list_families(db: Session, user_id: str) -> list[Family]:
    """Families the user belongs to, oldest first (the default-selection order)."""
    return list(
        db.execute(
            select(Family)
            .join(FamilyMembership, FamilyMembership.family_id == Family.id)
            .where(FamilyMembership.user_id == user_id)
            .order_by(Family.created_at.asc(), Family.id.asc())
        )
        .scalars()
        .all()
    )


def list_memberships_for_user(db: Session, user_id: str) -> list[tuple[FamilyMembership, Family]]:
    rows = db.execute(
        select(FamilyMembership, Family)
        .join(Family, Family.id == FamilyMembership.family_id)
        .where(FamilyMembership.user_id == user_id)
        .order_by(Family.created_at.asc(), Family.id.asc())
    ).all()
    return [(membership, family) for membership, family in rows]


def list_members(db: Session, family_id: int) -> list[FamilyMembership]:
    owner_first = case((FamilyMembership.role == RoleEnum.owner, 0), else_=1)
    return list(
        db.execute(
            select(FamilyMembership)
            .where(FamilyMembership.family_id == family_id)
            .order_by(owner_first, FamilyMembership.joined_at.asc(), FamilyMembership.id.asc())
        )
        .scalars()
        .all()
    )


def get_owner(db: Session, family_id: int) -> FamilyMembership:
    owner = db.execute(
        select(FamilyMembership).where(
            FamilyMembership.family_id == family_id,
            FamilyMembership.role == RoleEnum.owner,
        )
    ).scalar_one_or_none()
    if owner is None:
        raise NotFoundError("family owner not found")
    return owner


# Writers below are only used by the invite and lifecycle services. They flush
# but never commit; the caller owns the transaction.


def insert_membership(
    db: Session,
    *,
    family_id: int,
    user_id: str,
    display_name: str,
    role: RoleEnum,
) -> FamilyMembership:
    membership = FamilyMembership(
        family_id=family_id,
        user_id=user_id,
        display_name=display_name,
        role=role,
    )
    db.add(membership)
    db.flush()
    return membership


def delete_membership(db: Session, membership: FamilyMembership) -> None:
    db.delete(membership)
    db.flush()
