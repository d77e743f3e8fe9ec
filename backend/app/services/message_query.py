"""The message rows an actor can see, keyed by canonical conversation.

Inbox lists, thread views and unread badges all start from
``visible_messages``, so their grouping cannot drift apart.
"""

from __future__ import annotations

from sqlalchemy import and_, case, select
from sqlalchemy.sql import Subquery

from app.models.message import Message
from app.services.actor import Actor
from app.services.conversation_identity import (
    KeyColumns,
    conversation_key_expr,
    legacy_referral_key_expr,
)
from app.services.deletion_ledger import apply_cutoff
from app.services.participation import (
    RowColumns,
    addressed_to_clause,
    read_flag_column,
    unread_clause,
    visibility_clause,
)
from app.services.roles import normalized_role_expr


def visible_messages(
    actor: Actor, *, apply_deletions: bool = True, name: str = "visible"
) -> Subquery:
    """Visible, non-deleted rows with ``conversation_key`` and ``unread_flag``.

    Columns: id, user_id, sender_id, recipient_id, conversation_id, content,
    sender_name, created_at, sender_role, recipient_role, read_flag,
    conversation_key, legacy_key, unread_flag (1 when the row is addressed to
    the actor and unread on the actor's side).
    """
    base = (
        select(
            Message.id,
            Message.user_id,
            Message.sender_id,
            Message.recipient_id,
            Message.conversation_id,
            Message.content,
            Message.sender_name,
            Message.created_at,
            normalized_role_expr(Message.sender).label("sender_role"),
            normalized_role_expr(Message.recipient_role).label("recipient_role"),
            read_flag_column(actor).label("read_flag"),
        )
        .where(Message.deleted_at.is_(None))
        .subquery("m")
    )

    key_cols = KeyColumns(
        id=base.c.id,
        sender_id=base.c.sender_id,
        recipient_id=base.c.recipient_id,
        user_id=base.c.user_id,
        conversation_id=base.c.conversation_id,
        sender_role=base.c.sender_role,
        recipient_role=base.c.recipient_role,
    )
    addressed = addressed_to_clause(
        RowColumns(
            user_id=base.c.user_id,
            sender_id=base.c.sender_id,
            recipient_id=base.c.recipient_id,
            sender_role=base.c.sender_role,
            recipient_role=base.c.recipient_role,
        ),
        actor,
    )
    keyed = select(
        *base.c,
        conversation_key_expr(key_cols, actor).label("conversation_key"),
        legacy_referral_key_expr(key_cols).label("legacy_key"),
        case((and_(addressed, unread_clause(base.c.read_flag)), 1), else_=0).label("unread_flag"),
    ).subquery("k")

    stmt = select(*keyed.c).select_from(keyed).where(
        visibility_clause(
            RowColumns(
                user_id=keyed.c.user_id,
                sender_id=keyed.c.sender_id,
                recipient_id=keyed.c.recipient_id,
                sender_role=keyed.c.sender_role,
                recipient_role=keyed.c.recipient_role,
                conversation_key=keyed.c.conversation_key,
            ),
            actor,
        )
    )
    if apply_deletions:
        stmt = apply_cutoff(stmt, keyed, actor)
    return stmt.subquery(name)
