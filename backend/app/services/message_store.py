"""Message writes and DTO mapping.

Role-aware rules for who may message whom, who may edit or delete a message,
and how read flags start out. The canonical ``conversation_id`` is computed
here at write time; read paths still re-derive it per viewer.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.config import settings
from app.models.message import Message
from app.models.user import User
from app.schemas.messages import MessageCreateSchema, MessageSchema
from app.services.actor import Actor
from app.services.conversation_identity import resolve_conversation_id
from app.services.deletion_ledger import forget_conversation, validate_conversation_id
from app.services.errors import ForbiddenError, MessageValidationError, NotFoundError
from app.services.message_query import visible_messages
from app.services.participation import (
    MESSAGING_ROLES,
    RowColumns,
    addressed_to_clause,
    read_columns_for,
    read_columns_for_role,
    unread_clause,
)
from app.services.roles import Role, normalize_role, normalized_role_expr
from app.services.schema_probe import messages_table

logger = logging.getLogger(__name__)

# Recipient roles each sender role may address. Admins name a concrete
# user and take the role from the recipient's account.
_ALLOWED_RECIPIENTS: dict[str, frozenset[str]] = {
    Role.STUDENT.value: frozenset({Role.COUNSELOR.value, Role.ADMIN.value}),
    Role.GUEST.value: frozenset({Role.COUNSELOR.value}),
    Role.COUNSELOR.value: frozenset(
        {Role.STUDENT.value, Role.GUEST.value, Role.COUNSELOR.value, Role.REFERRAL_USER.value}
    ),
    Role.REFERRAL_USER.value: frozenset({Role.COUNSELOR.value}),
}

# Admin sends are addressed to a concrete user; these roles can read them back.
_ADMIN_RECIPIENTS = frozenset(
    {Role.STUDENT.value, Role.GUEST.value, Role.COUNSELOR.value, Role.ADMIN.value}
)

_DEFAULT_RECIPIENT_ROLE: dict[str, str] = {
    Role.STUDENT.value: Role.COUNSELOR.value,
    Role.GUEST.value: Role.COUNSELOR.value,
    Role.REFERRAL_USER.value: Role.COUNSELOR.value,
}

# (sender role, recipient role) pairs that must name a specific user.
_RECIPIENT_ID_REQUIRED = frozenset(
    {
        (Role.COUNSELOR.value, Role.STUDENT.value),
        (Role.COUNSELOR.value, Role.GUEST.value),
        (Role.COUNSELOR.value, Role.REFERRAL_USER.value),
        (Role.REFERRAL_USER.value, Role.COUNSELOR.value),
    }
)

_OWNING_ROLES = frozenset({Role.STUDENT.value, Role.GUEST.value, Role.REFERRAL_USER.value})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_content(content: str | None) -> str:
    text = (content or "").strip()
    if not text:
        raise MessageValidationError("content is required.")
    if len(text) > settings.MESSAGE_MAX_LENGTH:
        raise MessageValidationError(
            f"content must be at most {settings.MESSAGE_MAX_LENGTH} characters."
        )
    return text


def _load_recipient(db: Session, recipient_id: int) -> User:
    user = db.get(User, recipient_id)
    if user is None:
        raise NotFoundError("Recipient not found.")
    return user


def _resolve_recipient(
    db: Session, actor: Actor, payload: MessageCreateSchema
) -> tuple[str, User | None]:
    requested = normalize_role(payload.recipient_role) or None

    if actor.role == Role.ADMIN.value:
        if payload.recipient_id is None:
            raise MessageValidationError("recipient_id is required.")
        recipient = _load_recipient(db, payload.recipient_id)
        recipient_role = normalize_role(recipient.role)
        if recipient_role in ("", Role.SYSTEM.value):
            raise MessageValidationError("Recipient cannot receive messages.")
        if recipient_role not in _ADMIN_RECIPIENTS:
            raise ForbiddenError(f"Cannot send messages to {recipient_role}.")
        if requested is not None and requested != recipient_role:
            raise MessageValidationError("recipient_role does not match the recipient.")
    else:
        allowed = _ALLOWED_RECIPIENTS.get(actor.role)
        if allowed is None:
            raise ForbiddenError("Forbidden.")
        recipient_role = requested or _DEFAULT_RECIPIENT_ROLE.get(actor.role)
        if recipient_role is None:
            raise MessageValidationError("recipient_role is required.")
        if recipient_role not in allowed:
            raise ForbiddenError(f"Cannot send messages to {recipient_role}.")
        if payload.recipient_id is None:
            if (actor.role, recipient_role) in _RECIPIENT_ID_REQUIRED:
                raise MessageValidationError("recipient_id is required.")
            return recipient_role, None
        recipient = _load_recipient(db, payload.recipient_id)
        if normalize_role(recipient.role) != recipient_role:
            raise MessageValidationError("recipient_role does not match the recipient.")

    if recipient.id == actor.id:
        raise MessageValidationError("Cannot send a message to yourself.")
    return recipient_role, recipient


def _owner_id(actor: Actor, recipient_role: str, recipient: User | None) -> int:
    if actor.role in _OWNING_ROLES:
        return actor.id
    if recipient is not None and recipient_role in _OWNING_ROLES:
        return recipient.id
    return actor.id


def _initial_read_flags(actor: Actor, recipient_role: str, now: datetime) -> dict[str, Any]:
    """Sender's side starts read, recipient's side unread."""
    sender_cols = read_columns_for(actor)
    recipient_cols = read_columns_for_role(recipient_role)
    values: dict[str, Any] = {}
    if sender_cols.flag != recipient_cols.flag:
        values[sender_cols.flag] = True
        if sender_cols.read_at:
            values[sender_cols.read_at] = now
    values[recipient_cols.flag] = False
    if recipient_cols.read_at:
        values[recipient_cols.read_at] = None
    return values


def _write_columns(db: Session, message: Message, values: dict[str, Any]) -> None:
    mapped = Message.__table__.c
    extra: dict[str, Any] = {}
    for name, value in values.items():
        if name in mapped:
            setattr(message, name, value)
        else:
            extra[name] = value
    if extra:
        t = messages_table(*extra)
        db.execute(update(t).where(t.c.id == message.id).values(extra))


def send_message(db: Session, actor: Actor, payload: MessageCreateSchema) -> Message:
    content = _clean_content(payload.content)
    recipient_role, recipient = _resolve_recipient(db, actor, payload)
    now = _utcnow()

    message = Message(
        user_id=_owner_id(actor, recipient_role, recipient),
        sender=actor.role,
        sender_id=actor.id,
        sender_name=actor.name,
        recipient_id=recipient.id if recipient is not None else None,
        recipient_role=recipient_role,
        content=content,
        created_at=now,
        updated_at=now,
    )
    db.add(message)
    db.flush()

    message.conversation_id = resolve_conversation_id(message, actor)
    hint = (payload.conversation_id or "").strip(" ")
    if hint and hint != message.conversation_id:
        logger.debug(
            "send: ignoring conversation hint %r for message %s (canonical %r)",
            hint,
            message.id,
            message.conversation_id,
        )
    _write_columns(db, message, _initial_read_flags(actor, recipient_role, now))
    db.commit()
    db.refresh(message)

    logger.info(
        "message sent: id=%s sender=%s role=%s recipient_role=%s recipient=%s conversation=%s",
        message.id,
        actor.id,
        actor.role,
        recipient_role,
        message.recipient_id,
        message.conversation_id,
    )
    return message


def _load_for_change(db: Session, actor: Actor, message_id: int) -> Message:
    message = db.get(Message, message_id)
    if message is None or message.deleted_at is not None:
        raise NotFoundError("Message not found.")

    sender_role = normalize_role(message.sender)
    if sender_role == Role.SYSTEM.value:
        raise ForbiddenError("System messages cannot be modified.")
    if actor.role == Role.ADMIN.value and sender_role == Role.ADMIN.value:
        return message

    # Legacy rows may lack sender_id; the owner is then the author.
    author_id = message.sender_id if message.sender_id is not None else message.user_id
    if sender_role != actor.role or author_id != actor.id:
        raise ForbiddenError("You can only modify your own messages.")
    return message


def edit_message(db: Session, actor: Actor, message_id: int, content: str | None) -> Message:
    text = _clean_content(content)
    message = _load_for_change(db, actor, message_id)
    message.content = text
    message.updated_at = _utcnow()
    db.commit()
    db.refresh(message)
    logger.info("message edited: id=%s by=%s", message.id, actor.id)
    return message


def delete_message(db: Session, actor: Actor, message_id: int) -> None:
    message = _load_for_change(db, actor, message_id)
    db.delete(message)
    db.commit()
    logger.info("message deleted: id=%s by=%s", message_id, actor.id)


def mark_as_read(
    db: Session,
    actor: Actor,
    *,
    message_ids: list[int] | None = None,
    conversation_id: str | None = None,
) -> int:
    """Flag messages addressed to ``actor`` as read on the actor's side.

    With neither ``message_ids`` nor ``conversation_id`` every unread message
    addressed to the actor is marked. Returns the number of rows updated.
    """
    cols = read_columns_for(actor)
    t = messages_table(cols.flag, cols.read_at)
    addressed = addressed_to_clause(
        RowColumns(
            user_id=t.c.user_id,
            sender_id=t.c.sender_id,
            recipient_id=t.c.recipient_id,
            sender_role=normalized_role_expr(t.c.sender),
            recipient_role=normalized_role_expr(t.c.recipient_role),
        ),
        actor,
    )
    stmt = update(t).where(addressed, unread_clause(t.c[cols.flag]), t.c.deleted_at.is_(None))

    if message_ids is not None:
        if not message_ids:
            return 0
        stmt = stmt.where(t.c.id.in_(message_ids))
    if conversation_id is not None:
        key = validate_conversation_id(conversation_id)
        visible = visible_messages(actor)
        stmt = stmt.where(
            t.c.id.in_(select(visible.c.id).where(visible.c.conversation_key == key))
        )

    values: dict[str, Any] = {cols.flag: True}
    if cols.read_at:
        values[cols.read_at] = _utcnow()
    result = db.execute(stmt.values(values))
    db.commit()

    updated = result.rowcount or 0
    logger.debug("mark as read: user=%s role=%s updated=%s", actor.id, actor.role, updated)
    return updated


def purge_conversation(db: Session, actor: Actor, conversation_id: str | None) -> int:
    """Hard-delete every message the admin sees under a key, plus its ledger rows."""
    if actor.role != Role.ADMIN.value:
        raise ForbiddenError("Forbidden.")
    key = validate_conversation_id(conversation_id)

    visible = visible_messages(actor, apply_deletions=False)
    ids = list(db.scalars(select(visible.c.id).where(visible.c.conversation_key == key)))
    if not ids:
        raise NotFoundError("Conversation not found.")

    db.execute(delete(Message).where(Message.id.in_(ids)))
    forget_conversation(db, key)
    db.commit()

    logger.warning(
        "conversation purged: admin=%s conversation=%s messages=%s", actor.id, key, len(ids)
    )
    return len(ids)


# ── DTO ───────────────────────────────────────────────────────────────────────


def viewer_is_read(message: Message, actor: Actor) -> bool:
    """Read state on the actor's side, for mapped flag columns only."""
    if actor.role not in MESSAGING_ROLES:
        return False
    return bool(getattr(message, read_columns_for(actor).flag, False))


def to_message_dto(message: Message, actor: Actor, *, is_read: bool | None = None) -> MessageSchema:
    sender_user = message.sender_user
    recipient_user = message.recipient_user
    sender_role = normalize_role(message.sender)
    recipient_role = normalize_role(message.recipient_role) or None

    if message.sender_id is not None and message.sender_id == actor.id:
        peer_id = message.recipient_id
        peer_user = recipient_user
        peer_role = recipient_role
    else:
        peer_id = message.sender_id
        peer_user = sender_user
        peer_role = sender_role

    return MessageSchema(
        id=message.id,
        conversation_id=resolve_conversation_id(message, actor),
        content=message.content,
        sender=sender_role,
        sender_id=message.sender_id,
        sender_name=message.sender_name or (sender_user.name if sender_user else None),
        sender_avatar_url=sender_user.avatar_url if sender_user else None,
        recipient_role=recipient_role,
        recipient_id=message.recipient_id,
        recipient_name=recipient_user.name if recipient_user else None,
        recipient_avatar_url=recipient_user.avatar_url if recipient_user else None,
        user_id=message.user_id,
        is_read=viewer_is_read(message, actor) if is_read is None else bool(is_read),
        is_own=message.sender_id is not None and message.sender_id == actor.id,
        peer_id=peer_id,
        peer_name=peer_user.name if peer_user else None,
        peer_role=peer_role,
        created_at=message.created_at,
        updated_at=message.updated_at,
    )
