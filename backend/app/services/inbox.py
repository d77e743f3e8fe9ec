"""Per-actor inbox list and thread view."""

from __future__ import annotations

import logging

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, aliased
from sqlalchemy.sql import Select, Subquery

from app.config import settings
from app.models.message import Message
from app.models.user import User
from app.schemas.messages import (
    ConversationSummarySchema,
    InboxResponseSchema,
    ThreadResponseSchema,
)
from app.services.actor import Actor
from app.services.conversation_identity import student_conversation_id
from app.services.deletion_ledger import validate_conversation_id
from app.services.errors import NotFoundError
from app.services.message_query import visible_messages
from app.services.message_store import to_message_dto
from app.services.participation import read_flag_column

logger = logging.getLogger(__name__)


def _clamp(value: int | None, default: int, maximum: int) -> int:
    if value is None or value < 1:
        return default
    return min(value, maximum)


def _matching_keys(actor: Actor, search: str) -> Select:
    """Conversation keys with any message or participant matching ``search``."""
    rows = visible_messages(actor, name="matching")
    sender_user = aliased(User, name="sender_user")
    recipient_user = aliased(User, name="recipient_user")
    owner_user = aliased(User, name="owner_user")

    conditions = [
        rows.c.content.icontains(search, autoescape=True),
        rows.c.sender_name.icontains(search, autoescape=True),
    ]
    for user in (sender_user, recipient_user, owner_user):
        conditions.append(user.name.icontains(search, autoescape=True))
        conditions.append(user.email.icontains(search, autoescape=True))
    if search.isascii() and search.isdigit():
        number = int(search)
        conditions += [
            rows.c.sender_id == number,
            rows.c.recipient_id == number,
            rows.c.user_id == number,
        ]

    return (
        select(rows.c.conversation_key)
        .select_from(rows)
        .outerjoin(sender_user, sender_user.id == rows.c.sender_id)
        .outerjoin(recipient_user, recipient_user.id == rows.c.recipient_id)
        .outerjoin(owner_user, owner_user.id == rows.c.user_id)
        .where(or_(*conditions))
        .distinct()
    )


def _conversation_groups(actor: Actor, search: str | None) -> Subquery:
    visible = visible_messages(actor)
    stmt = select(
        visible.c.conversation_key,
        func.max(visible.c.id).label("last_id"),
        func.max(visible.c.unread_flag).label("unread"),
        func.sum(visible.c.unread_flag).label("unread_count"),
        func.count().label("message_count"),
    ).group_by(visible.c.conversation_key)
    if search:
        stmt = stmt.where(visible.c.conversation_key.in_(_matching_keys(actor, search)))
    return stmt.subquery("conversations")


def list_inbox(
    db: Session,
    actor: Actor,
    *,
    search: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> InboxResponseSchema:
    """One entry per canonical conversation, newest activity first."""
    limit = _clamp(limit, settings.INBOX_DEFAULT_LIMIT, settings.INBOX_MAX_LIMIT)
    offset = max(offset, 0)
    search = (search or "").strip() or None

    groups = _conversation_groups(actor, search)
    total = db.scalar(select(func.count()).select_from(groups)) or 0

    rows = db.execute(
        select(
            Message,
            read_flag_column(actor).label("viewer_read"),
            groups.c.conversation_key,
            groups.c.unread,
            groups.c.unread_count,
            groups.c.message_count,
        )
        .join(groups, Message.id == groups.c.last_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .offset(offset)
    ).all()

    conversations = [
        ConversationSummarySchema(
            conversation_id=row.conversation_key,
            last_message=to_message_dto(row.Message, actor, is_read=row.viewer_read),
            unread=bool(row.unread),
            unread_count=int(row.unread_count or 0),
            message_count=int(row.message_count or 0),
        )
        for row in rows
    ]
    logger.debug(
        "inbox: user=%s role=%s total=%s returned=%s", actor.id, actor.role, total, len(rows)
    )
    return InboxResponseSchema(
        conversations=conversations,
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(conversations) < total,
    )


def get_thread(
    db: Session,
    actor: Actor,
    conversation_id: str | None,
    *,
    limit: int | None = None,
    offset: int = 0,
) -> ThreadResponseSchema:
    """Chronological messages of one conversation as the actor sees it.

    ``conversation_id=None`` returns everything visible to the actor, which is
    the single thread a student or guest has.
    """
    limit = _clamp(limit, settings.THREAD_DEFAULT_LIMIT, settings.THREAD_MAX_LIMIT)
    offset = max(offset, 0)

    visible = visible_messages(actor)
    ids = select(visible.c.id)
    if conversation_id is None:
        key = student_conversation_id(actor.id)
    else:
        key = validate_conversation_id(conversation_id)
        ids = ids.where(visible.c.conversation_key == key)

    total = db.scalar(select(func.count()).select_from(ids.subquery("thread_ids"))) or 0
    if conversation_id is not None and total == 0:
        raise NotFoundError("Conversation not found.")

    rows = db.execute(
        select(Message, read_flag_column(actor).label("viewer_read"))
        .where(Message.id.in_(ids))
        .order_by(Message.created_at.asc(), Message.id.asc())
        .limit(limit)
        .offset(offset)
    ).all()

    messages = [to_message_dto(row.Message, actor, is_read=row.viewer_read) for row in rows]
    return ThreadResponseSchema(
        conversation_id=key,
        messages=messages,
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + len(messages) < total,
    )
