from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.models.entities import Event, Message
from app.schemas.resources import MessageCreate, MessageListResponse, MessageResponse
from app.services.access import FamilyScope, family_scope, get_scoped
from app.services.policy import Action, ResourceKind

router = APIRouter(prefix="/v1/families/{family_id}/messages", tags=["messages"])


def _to_message_response(message: Message) -> MessageResponse:
    return MessageResponse.model_validate(message, from_attributes=True)


@router.get("", response_model=MessageListResponse)
def list_messages(
    family_id: int,
    event_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.message, Action.read)),
):
    query = select(Message).where(Message.family_id == family_id)
    if event_id is not None:
        query = query.where(Message.event_id == event_id)
    messages = db.execute(query.order_by(Message.created_at.asc(), Message.id.asc())).scalars().all()
    return MessageListResponse(items=[_to_message_response(item) for item in messages])


@router.post("", response_model=MessageResponse, status_code=201)
def create_message(
    family_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.message, Action.create)),
):
    if payload.event_id is not None:
        get_scoped(db, Event, payload.event_id, family_id, "event")
    message = Message(
        family_id=family_id,
        event_id=payload.event_id,
        sender_id=scope.user_id,
        content=payload.content,
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    return _to_message_response(message)


@router.delete("/{message_id}", status_code=204)
def delete_message(
    family_id: int,
    message_id: int,
    db: Session = Depends(get_db),
    scope: FamilyScope = Depends(family_scope(ResourceKind.message, Action.delete)),
):
    message = get_scoped(db, Message, message_id, family_id, "message")
    db.delete(message)
    db.commit()
    return Response(status_code=204)
