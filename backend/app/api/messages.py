"""Role-agnostic message endpoints: edit/delete own messages, hide a
conversation, and the unread badge."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_actor, http_error
from app.database import get_db
from app.schemas.messages import (
    ConversationDeletedSchema,
    MessageSchema,
    MessageUpdateSchema,
    UnreadCountSchema,
)
from app.services.actor import Actor
from app.services.deletion_ledger import delete_conversation
from app.services.errors import MessagingError
from app.services.message_store import delete_message, edit_message, to_message_dto
from app.services.participation import MESSAGING_ROLES
from app.services.unread import count_unread_conversations

router = APIRouter(tags=["messages"])


def _messaging_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    if actor.role not in MESSAGING_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden.")
    return actor


@router.get("/messages/unread-count", response_model=UnreadCountSchema)
def unread_count(actor: Actor = Depends(_messaging_actor), db: Session = Depends(get_db)):
    return UnreadCountSchema(unread_conversations=count_unread_conversations(db, actor))


@router.api_route("/messages/{message_id}", methods=["PATCH", "PUT"], response_model=MessageSchema)
def edit_own_message(
    message_id: int,
    body: MessageUpdateSchema,
    actor: Actor = Depends(_messaging_actor),
    db: Session = Depends(get_db),
):
    try:
        message = edit_message(db, actor, message_id, body.content)
    except MessagingError as exc:
        raise http_error(exc)
    return to_message_dto(message, actor)


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_own_message(
    message_id: int,
    actor: Actor = Depends(_messaging_actor),
    db: Session = Depends(get_db),
):
    try:
        delete_message(db, actor, message_id)
    except MessagingError as exc:
        raise http_error(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


def _hide_conversation(conversation_id: str, actor: Actor, db: Session) -> ConversationDeletedSchema:
    try:
        row = delete_conversation(db, actor, conversation_id)
    except MessagingError as exc:
        raise http_error(exc)
    return ConversationDeletedSchema(conversation_id=row.conversation_id, deleted_at=row.deleted_at)


@router.delete("/messages/conversations/{conversation_id}", response_model=ConversationDeletedSchema)
def delete_message_conversation(
    conversation_id: str,
    actor: Actor = Depends(_messaging_actor),
    db: Session = Depends(get_db),
):
    """Hide a conversation for the current user until a newer message arrives."""
    return _hide_conversation(conversation_id, actor, db)


@router.delete("/messages/thread/{conversation_id}", response_model=ConversationDeletedSchema)
def delete_message_thread(
    conversation_id: str,
    actor: Actor = Depends(_messaging_actor),
    db: Session = Depends(get_db),
):
    return _hide_conversation(conversation_id, actor, db)


@router.delete("/conversations/{conversation_id}", response_model=ConversationDeletedSchema)
def delete_conversation_alias(
    conversation_id: str,
    actor: Actor = Depends(_messaging_actor),
    db: Session = Depends(get_db),
):
    return _hide_conversation(conversation_id, actor, db)
