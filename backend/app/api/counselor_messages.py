from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import http_error, require_roles
from app.database import get_db
from app.schemas.messages import (
    InboxResponseSchema,
    MarkAsReadResponseSchema,
    MarkAsReadSchema,
    MessageCreateSchema,
    MessageSchema,
    ThreadResponseSchema,
)
from app.services.actor import Actor
from app.services.errors import MessagingError
from app.services.inbox import get_thread, list_inbox
from app.services.message_store import mark_as_read, send_message, to_message_dto
from app.services.roles import Role

router = APIRouter(prefix="/counselor/messages", tags=["counselor-messages"])

_counselor = require_roles(Role.COUNSELOR.value)


@router.get("", response_model=InboxResponseSchema)
def list_counselor_inbox(
    search: str | None = Query(None, description="Matches content, participant names, or ids"),
    limit: int | None = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(_counselor),
    db: Session = Depends(get_db),
):
    """Student threads, office messages and direct threads, newest first."""
    return list_inbox(db, actor, search=search, limit=limit, offset=offset)


@router.get("/conversations/{conversation_id}", response_model=ThreadResponseSchema)
def get_counselor_conversation(
    conversation_id: str,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(_counselor),
    db: Session = Depends(get_db),
):
    try:
        return get_thread(db, actor, conversation_id, limit=limit, offset=offset)
    except MessagingError as exc:
        raise http_error(exc)


@router.post("", response_model=MessageSchema, status_code=status.HTTP_201_CREATED)
def send_counselor_message(
    body: MessageCreateSchema,
    actor: Actor = Depends(_counselor),
    db: Session = Depends(get_db),
):
    try:
        message = send_message(db, actor, body)
    except MessagingError as exc:
        raise http_error(exc)
    return to_message_dto(message, actor)


@router.post("/mark-as-read", response_model=MarkAsReadResponseSchema)
def mark_counselor_messages_read(
    body: MarkAsReadSchema | None = None,
    actor: Actor = Depends(_counselor),
    db: Session = Depends(get_db),
):
    body = body or MarkAsReadSchema()
    try:
        updated = mark_as_read(
            db, actor, message_ids=body.message_ids, conversation_id=body.conversation_id
        )
    except MessagingError as exc:
        raise http_error(exc)
    return MarkAsReadResponseSchema(updated=updated)
