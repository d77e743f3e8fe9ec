from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.intake_request import IntakeRequest
from app.models.referral import Referral
from app.schemas.notifications import NotificationCountsSchema
from app.services.actor import Actor
from app.services.roles import Role
from app.services.unread import count_unread_conversations

logger = logging.getLogger(__name__)

PENDING = "pending"


def _pending_intake_requests(db: Session, actor: Actor) -> int:
    if actor.role != Role.COUNSELOR.value:
        return 0
    return (
        db.query(func.count(IntakeRequest.id))
        .filter(func.lower(IntakeRequest.status) == PENDING)
        .scalar()
        or 0
    )


def _pending_referrals(db: Session, actor: Actor) -> int:
    query = db.query(func.count(Referral.id)).filter(func.lower(Referral.status) == PENDING)
    if actor.role == Role.COUNSELOR.value:
        return query.scalar() or 0
    if actor.role == Role.REFERRAL_USER.value:
        return query.filter(Referral.requested_by_id == actor.id).scalar() or 0
    return 0


def _safe_count(db: Session, category: str, actor: Actor, fn: Callable[[], int]) -> int:
    """Run one badge category in a savepoint; a failure zero-fills only that category."""
    try:
        with db.begin_nested():
            return int(fn())
    except Exception:
        logger.exception(
            "notification counts: %s failed for user=%s role=%s", category, actor.id, actor.role
        )
        return 0


def build_notification_counts(db: Session, actor: Actor) -> NotificationCountsSchema:
    counts = NotificationCountsSchema(
        unread_messages=_safe_count(
            db, "unread_messages", actor, lambda: count_unread_conversations(db, actor)
        ),
        pending_appointments=_safe_count(
            db, "pending_appointments", actor, lambda: _pending_intake_requests(db, actor)
        ),
        new_referrals=_safe_count(
            db, "new_referrals", actor, lambda: _pending_referrals(db, actor)
        ),
    )
    logger.debug("notification counts for user=%s: %s", actor.id, counts.model_dump())
    return counts
