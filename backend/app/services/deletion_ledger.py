"""Per-user conversation deletion.

Deleting a conversation never touches messages. It records, for one
(user, conversation) pair, the moment the user hid it; only messages created
strictly after that moment are shown to that user again. Repeated deletes move
the cutoff forward.

Referral threads used to be keyed ``referral_user-{id}`` before they became
per-counselor dyads (``referral_user-{id}-counselor-{cid}``). Ledger rows
written under the old key still apply to every dyad sharing that prefix.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session, aliased
from sqlalchemy.sql import Select, Subquery

from app.config import settings
from app.models.conversation_deletion import ConversationDeletion
from app.services.actor import Actor
from app.services.conversation_identity import legacy_referral_prefix
from app.services.errors import MessageValidationError

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def validate_conversation_id(conversation_id: str | None) -> str:
    key = (conversation_id or "").strip(" ")
    if not key:
        raise MessageValidationError("conversation_id is required.")
    if len(key) > settings.CONVERSATION_ID_MAX_LENGTH:
        raise MessageValidationError(
            f"conversation_id must be at most {settings.CONVERSATION_ID_MAX_LENGTH} characters."
        )
    return key


def _dialect_insert(db: Session):
    name = db.get_bind().dialect.name
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    return insert


def delete_conversation(
    db: Session,
    actor: Actor,
    conversation_id: str | None,
    *,
    now: datetime | None = None,
) -> ConversationDeletion:
    """Hide ``conversation_id`` from ``actor`` as of ``now`` (upsert)."""
    key = validate_conversation_id(conversation_id)
    now = now or datetime.now(timezone.utc)

    insert = _dialect_insert(db)
    if insert is not None:
        stmt = insert(ConversationDeletion).values(
            user_id=actor.id,
            conversation_id=key,
            deleted_at=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "conversation_id"],
            set_={"deleted_at": now, "updated_at": now},
        )
        db.execute(stmt)
    else:
        existing = (
            db.query(ConversationDeletion)
            .filter_by(user_id=actor.id, conversation_id=key)
            .with_for_update()
            .first()
        )
        if existing is None:
            db.add(ConversationDeletion(user_id=actor.id, conversation_id=key, deleted_at=now))
        else:
            existing.deleted_at = now
            existing.updated_at = now
    db.commit()

    logger.info("conversation deleted: user=%s conversation=%s", actor.id, key)
    return (
        db.query(ConversationDeletion)
        .populate_existing()
        .filter_by(user_id=actor.id, conversation_id=key)
        .one()
    )


def get_cutoff(db: Session, actor: Actor, conversation_id: str) -> datetime | None:
    """The actor's deletion cutoff for a conversation, or None."""
    legacy_key = legacy_referral_prefix(conversation_id)
    keys = [conversation_id] if legacy_key is None else [conversation_id, legacy_key]
    rows = (
        db.query(ConversationDeletion)
        .filter(
            ConversationDeletion.user_id == actor.id,
            ConversationDeletion.conversation_id.in_(keys),
        )
        .all()
    )
    by_key = {row.conversation_id: row.deleted_at for row in rows}
    cutoff = by_key.get(conversation_id)
    if cutoff is None and legacy_key is not None:
        cutoff = by_key.get(legacy_key)
    return as_utc(cutoff) if cutoff is not None else None


def is_visible_after_cutoff(created_at: datetime, cutoff: datetime | None) -> bool:
    if cutoff is None:
        return True
    return as_utc(created_at) > as_utc(cutoff)


def apply_cutoff(stmt: Select, keyed: Subquery, actor: Actor) -> Select:
    """Drop rows of ``keyed`` at or before the actor's cutoff for their conversation.

    ``keyed`` must expose ``conversation_key``, ``legacy_key`` and ``created_at``.
    """
    exact = aliased(ConversationDeletion, name="mcd_exact")
    legacy = aliased(ConversationDeletion, name="mcd_legacy")
    cutoff = func.coalesce(exact.deleted_at, legacy.deleted_at)
    return (
        stmt.outerjoin(
            exact,
            and_(exact.user_id == actor.id, exact.conversation_id == keyed.c.conversation_key),
        )
        .outerjoin(
            legacy,
            and_(legacy.user_id == actor.id, legacy.conversation_id == keyed.c.legacy_key),
        )
        .where(or_(cutoff.is_(None), keyed.c.created_at > cutoff))
    )


def forget_conversation(db: Session, conversation_id: str) -> int:
    """Remove every user's ledger row for a conversation that no longer exists."""
    return (
        db.query(ConversationDeletion)
        .filter(ConversationDeletion.conversation_id == conversation_id)
        .delete(synchronize_session=False)
    )
