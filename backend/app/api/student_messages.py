from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import http_error, require_roles
from app.database import get_db
from app.schemas.messages import (
    MarkAsReadResponseSchema,
    MarkAsReadSchema,
    MessageCreateSchema,
    MessageSchema,
    ThreadResponseSchema,
)
from app.services.actor import Actor
from app.services.errors import MessagingError
from app.services.inbox import get_thread
from app.services.message_store import mark_as_read, send_message, to_message_dto
from app.services.roles import Role

router = APIRouter(prefix="/student/messages", tags=["student-messages"])

_student = require_roles(Role.STUDENT.value, Role.GUEST.value)


@router.get("", response_model=ThreadResponseSchema)
def list_student_messages(
    limit: int | None = Query(None, ge=1, description="Page size"),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(_student),
    db: Session = Depends(get_db),
):
    """The student's single thread with the counseling office, oldest first."""
    return get_thread(db, actor, None, limit=limit, offset=offset)


@router.post("", response_model=MessageSchema, status_code=status.HTTP_201_CREATED)
def send_student_message(
    body: MessageCreateSchema,
    actor: Actor = Depends(_student),
    db: Session = Depends(get_db),
):
    try:
        message = send_message(db, actor, body)
    except MessagingError as exc:
        raise http_error(exc)
    return to_message_dto(message, actor)


@router.post("/mark-as-read", response_model=MarkAsReadResponseSchema)
def mark_student_messages_read(
    body: MarkAsReadSchema | None = None,
    actor: Actor = Depends(_student),
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
