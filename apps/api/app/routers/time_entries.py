from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import ValidationError
from app.models.entities import TimeEntry, as_utc
from app.schemas.resources import TimeEntryCreate, TimeEntryListResponse, TimeEntryResponse, TimeEntryUpdate
from app.services.access import FamilyScope, family_scope, get_scoped, require_access
from app.services.policy import Action, ResourceKind

router = APIRouter(prefix="/v1/families/{family_id}/time-entries", tags=["time-entries"])


def _to_entry_response(entry: TimeEntry) -> TimeEntryResponse:
    return TimeEntryResponse(
        id=entry.id,
        family_id=entry.family_id,
        user_id=entry.user_id,
        start_time=entry.start_time,
        end_time=entry.end_time,
        notes=entry.notes or "",
    )


def _check_range(entry: TimeEntry) -> None:
    if entry.end_time is not None and as_utc(entry.end_time) < as_utc(entry.start_time):
        raise ValidationError("end_time must not be before start_time")


@router.get("", response_model=TimeEntryListResponse)
def list_time_entries(
    family_id: int,
    user_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.time_entry, Action.read)),
):
    query = select(TimeEntry).where(TimeEntry.family_id == family_id)
    if user_id is not None:
        query = query.where(TimeEntry.user_id == user_id)
    entries = db.execute(query.order_by(TimeEntry.start_time.desc(), TimeEntry.id.desc())).scalars().all()
    return TimeEntryListResponse(items=[_to_entry_response(item) for item in entries])


@router.post("", response_model=TimeEntryResponse, status_code=201)
def create_time_entry(
    family_id: int,
    payload: TimeEntryCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.time_entry, Action.create)),
):
    # Entries are always logged for the caller.
    entry = TimeEntry(
        family_id=family_id,
        user_id=scope.user_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        notes=payload.notes,
    )
    _check_range(entry)
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return _to_entry_response(entry)


@router.patch("/{entry_id}", response_model=TimeEntryResponse)
def update_time_entry(
    family_id: int,
    entry_id: int,
    payload: TimeEntryUpdate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.time_entry, Action.create)),
):
    entry = get_scoped(db, TimeEntry, entry_id, family_id, "time entry")
    # Authors close their own entries; anyone else's needs update.
    if entry.user_id != scope.user_id:
        require_access(db, scope.user_id, family_id, ResourceKind.time_entry, Action.update)
    if payload.end_time is not None:
        entry.end_time = payload.end_time
    if payload.notes is not None:
        entry.notes = payload.notes
    try:
        _check_range(entry)
    except ValidationError:
        db.rollback()
        raise
    db.commit()
    db.refresh(entry)
    return _to_entry_response(entry)


@router.delete("/{entry_id}", status_code=204)
def delete_time_entry(
    family_id: int,
    entry_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.time_entry, Action.delete)),
):
    entry = get_scoped(db, TimeEntry, entry_id, family_id, "time entry")
    db.delete(entry)
    db.commit()
    return Response(status_code=204)
