"""Unread conversation badge.

A conversation is unread for an actor when ANY visible message in it is
addressed to the actor and unread on the actor's side, no matter which message
is the latest. Counts never raise: a failed query is rolled back to a
savepoint and reported as 0.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from app.services.actor import Actor
from app.services.message_query import visible_messages
from app.services.participation import MESSAGING_ROLES

logger = logging.getLogger(__name__)


def unread_conversations_query(actor: Actor) -> Select:
    visible = visible_messages(actor)
    unread_keys = (
        select(visible.c.conversation_key)
        .group_by(visible.c.conversation_key)
        .having(func.max(visible.c.unread_flag) == 1)
        .subquery("unread_keys")
    )
    return select(func.count()).select_from(unread_keys)


def count_unread_conversations(db: Session, actor: Actor) -> int:
    if actor.role not in MESSAGING_ROLES:
        return 0
    try:
        with db.begin_nested():
            return int(db.execute(unread_conversations_query(actor)).scalar() or 0)
    except Exception:
        logger.exception(
            "unread count failed: user=%s role=%s, reporting 0", actor.id, actor.role
        )
        return 0
