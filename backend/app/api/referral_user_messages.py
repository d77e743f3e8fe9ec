from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.api.deps import http_error, require_roles
from app.database import get_db
from app.schemas.messages import (
    InboxResponseSchema,
    MarkAsReadResponseSchema,
    MarkAsReadSchema,
    MessageCreateSchema,
    MessageSchema,
    MessageUpdateSchema,
    ThreadResponseSchema,
)
from app.services.actor import Actor
from app.services.errors import MessagingError
from app.services.inbox import get_thread, list_inbox
from app.services.message_store import (
    delete_message,
    edit_message,
    mark_as_read,
    send_message,
    to_message_dto,
)
from app.services.roles import Role

router = APIRouter(prefix="/referral-user/messages", tags=["referral-user-messages"])

_referral_user = require_roles(Role.REFERRAL_USER.value)


@router.get("", response_model=InboxResponseSchema)
def list_referral_inbox(
    search: str | None = Query(None),
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(_referral_user),
    db: Session = Depends(get_db),
):
    """One thread per counselor the referral user has exchanged messages with."""
    return list_inbox(db, actor, search=search, limit=limit, offset=offset)


@router.get("/conversations/{conversation_id}", response_model=ThreadResponseSchema)
def get_referral_conversation(
    conversation_id: str,
    limit: int | None = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(_referral_user),
    db: Session = Depends(get_db),
):
    try:
        return get_thread(db, actor, conversation_id, limit=limit, offset=offset)
    except MessagingError as exc:
        raise http_error(exc)


@router.post("", response_model=MessageSchema, status_code=status.HTTP_201_CREATED)
def send_referral_message(
    body: MessageCreateSchema,
    actor: Actor = Depends(_referral_user),
    db: Session = Depends(get_db),
):
    try:
        message = send_message(db, actor, body)
    except MessagingError as exc:
        raise http_error(exc)
    return to_message_dto(message, actor)


@router.post("/mark-as-read", response_model=MarkAsReadResponseSchema)
def mark_referral_messages_read(
    body: MarkAsReadSchema | None = None,
    actor: Actor = Depends(_referral_user),
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


@router.api_route("/{message_id}", methods=["PATCH", "PUT"], response_model=MessageSchema)
def edit_referral_message(
    message_id: int,
    body: MessageUpdateSchema,
    actor: Actor = Depends(_referral_user),
    db: Session = Depends(get_db),
):
    try:
        message = edit_message(db, actor, message_id, body.content)
    except MessagingError as exc:
        raise http_error(exc)
    return to_message_dto(message, actor)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_referral_message(
    message_id: int,
    actor: Actor = Depends(_referral_user),
    db: Session = Depends(get_db),
):
    try:
        delete_message(db, actor, message_id)
    except MessagingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
