from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import ValidationError
from app.models.entities import Event, Message, as_utc
from app.schemas.resources import EventCompletion, EventCreate, EventListResponse, EventResponse, EventUpdate
from app.services.access import FamilyScope, family_scope, get_scoped
from app.services.policy import Action, ResourceKind

router = APIRouter(prefix="/v1/families/{family_id}/events", tags=["events"])


def _to_event_response(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        family_id=event.family_id,
        title=event.title,
        description=event.description or "",
        start_time=event.start_time,
        end_time=event.end_time,
        completed_at=event.completed_at,
        created_by=event.created_by,
    )


@router.get("", response_model=EventListResponse)
def list_events(
    family_id: int,
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.read)),
):
    query = select(Event).where(Event.family_id == family_id)
    if start is not None:
        query = query.where(Event.end_time >= start)
    if end is not None:
        query = query.where(Event.start_time <= end)
    events = db.execute(query.order_by(Event.start_time.asc(), Event.id.asc())).scalars().all()
    return EventListResponse(items=[_to_event_response(item) for item in events])


@router.post("", response_model=EventResponse, status_code=201)
def create_event(
    family_id: int,
    payload: EventCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.create)),
):
    event = Event(
        family_id=family_id,
        title=payload.title,
        description=payload.description,
        start_time=payload.start_time,
        end_time=payload.end_time,
        created_by=scope.user_id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return _to_event_response(event)


@router.get("/{event_id}", response_model=EventResponse)
def get_event(
    family_id: int,
    event_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.read)),
):
    return _to_event_response(get_scoped(db, Event, event_id, family_id, "event"))


@router.patch("/{event_id}", response_model=EventResponse)
def update_event(
    family_id: int,
    event_id: int,
    payload: EventUpdate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.update)),
):
    event = get_scoped(db, Event, event_id, family_id, "event")
    if payload.title is not None:
        event.title = payload.title
    if payload.description is not None:
        event.description = payload.description
    if payload.start_time is not None:
        event.start_time = payload.start_time
    if payload.end_time is not None:
        event.end_time = payload.end_time
    if payload.completed is not None:
        event.completed_at = datetime.now(timezone.utc) if payload.completed else None
    if as_utc(event.end_time) < as_utc(event.start_time):
        db.rollback()
        raise ValidationError("end_time must not be before start_time")

    db.commit()
    db.refresh(event)
    return _to_event_response(event)


@router.post("/{event_id}/complete", response_model=EventResponse)
def set_event_completion(
    family_id: int,
    event_id: int,
    payload: EventCompletion | None = None,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.complete)),
):
    """Log (or clear) completion. Caregivers may do this without edit rights on the event."""
    event = get_scoped(db, Event, event_id, family_id, "event")
    completed = True if payload is None else payload.completed
    event.completed_at = datetime.now(timezone.utc) if completed else None
    db.commit()
    db.refresh(event)
    return _to_event_response(event)


@router.delete("/{event_id}", status_code=204)
def delete_event(
    family_id: int,
    event_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.event, Action.delete)),
):
    event = get_scoped(db, Event, event_id, family_id, "event")
    db.execute(delete(Message).where(Message.event_id == event.id))
    db.delete(event)
    db.commit()
    return Response(status_code=204)
