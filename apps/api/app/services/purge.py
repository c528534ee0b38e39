from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.orm import Session

from app.models.entities import (
    Document,
    Event,
    Family,
    FamilyMembership,
    InviteCode,
    Medication,
    MedicationLog,
    Message,
    PayRate,
    TimeEntry,
)

# Children before parents so foreign keys hold at every step.
SCOPED_RESOURCES = (
    MedicationLog,
    Medication,
    Message,
    Event,
    Document,
    TimeEntry,
    PayRate,
)


def purge_family(db: Session, family_id: int) -> dict[str, int]:
    """
    Hard-delete a family and every row that references it.

    Does not commit: the caller runs this inside a single transaction so a
    failure at any step leaves the family untouched. Returns deleted row
    counts per table.
    """
    counts: dict[str, int] = {}
    for model in SCOPED_RESOURCES:
        result = db.execute(delete(model).where(model.family_id == family_id))
        counts[model.__tablename__] = result.rowcount or 0

    counts[InviteCode.__tablename__] = db.execute(delete(InviteCode).where(InviteCode.family_id == family_id)).rowcount or 0
    counts[FamilyMembership.__tablename__] = (
        db.execute(delete(FamilyMembership).where(FamilyMembership.family_id == family_id)).rowcount or 0
    )
    counts[Family.__tablename__] = db.execute(delete(Family).where(Family.id == family_id)).rowcount or 0
    return counts
