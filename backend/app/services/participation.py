"""Which messages an actor may see, which are addressed to them, and which
read flag tracks their side.

Every predicate has a SQL form (used by list and count queries) and an
in-process twin (single-row checks). Visibility by role:

- admin: sent by this admin, addressed to the admin role (broadcast or this
  admin), or ``recipient_id`` is the admin whatever the recorded role says.
- counselor: addressed to the counselor role (office or this counselor), any
  ``student-*`` thread (shared caseload), or sent by this counselor.
- referral user: strictly 1:1 with counselors, in either direction.
- student / guest: rows they own.
"""

from __future__ import annotations

from typing import Any, NamedTuple

from sqlalchemy import Boolean, Integer, and_, cast, false, func, literal_column, or_
from sqlalchemy.sql.elements import ColumnElement

from app.models.message import Message
from app.services.actor import Actor
from app.services.conversation_identity import resolve_conversation_id
from app.services.errors import ForbiddenError
from app.services.roles import Role, STUDENT_SIDE_ROLES, normalize_role
from app.services.schema_probe import get_admin_read_schema

STUDENT_THREAD_PREFIX = "student-"

_STAFF_SENDERS = (Role.ADMIN.value, Role.COUNSELOR.value, Role.SYSTEM.value)

MESSAGING_ROLES = frozenset(
    {Role.ADMIN.value, Role.COUNSELOR.value, Role.REFERRAL_USER.value} | STUDENT_SIDE_ROLES
)


class RowColumns(NamedTuple):
    """Columns the predicates read; roles must already be normalised."""

    user_id: ColumnElement
    sender_id: ColumnElement
    recipient_id: ColumnElement
    sender_role: ColumnElement
    recipient_role: ColumnElement
    conversation_key: ColumnElement | None = None


class ReadColumns(NamedTuple):
    flag: str
    read_at: str | None


ORIGINATOR_READ = ReadColumns("is_read", "student_read_at")
STAFF_READ = ReadColumns("counselor_is_read", "counselor_read_at")


def _forbidden() -> ForbiddenError:
    return ForbiddenError("Forbidden.")


# ── Visibility ────────────────────────────────────────────────────────────────


def visibility_clause(c: RowColumns, actor: Actor) -> ColumnElement[bool]:
    role = actor.role
    admin = Role.ADMIN.value
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value

    if role == admin:
        return or_(
            and_(c.sender_role == admin, c.sender_id == actor.id),
            and_(
                c.recipient_role == admin,
                or_(c.recipient_id.is_(None), c.recipient_id == actor.id),
            ),
            c.recipient_id == actor.id,
        )
    if role == counselor:
        if c.conversation_key is None:
            raise ValueError("counselor visibility needs the conversation key column")
        return or_(
            and_(
                c.recipient_role == counselor,
                or_(c.recipient_id.is_(None), c.recipient_id == actor.id),
            ),
            c.conversation_key.like(f"{STUDENT_THREAD_PREFIX}%"),
            and_(c.sender_role == counselor, c.sender_id == actor.id),
        )
    if role == referral:
        return or_(
            and_(
                c.sender_role == referral,
                func.coalesce(c.sender_id, c.user_id) == actor.id,
                c.recipient_role == counselor,
            ),
            and_(
                c.recipient_role == referral,
                func.coalesce(c.recipient_id, c.user_id) == actor.id,
                c.sender_role == counselor,
            ),
        )
    if role in STUDENT_SIDE_ROLES:
        return c.user_id == actor.id
    raise _forbidden()


def _coalesce(*values: int | None) -> int | None:
    for value in values:
        if value is not None:
            return value
    return None


def is_visible(message: Any, actor: Actor) -> bool:
    if getattr(message, "deleted_at", None) is not None:
        return False

    role = actor.role
    sender_role = normalize_role(message.sender)
    rcpt_role = normalize_role(message.recipient_role)
    admin = Role.ADMIN.value
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value

    if role == admin:
        return (
            (sender_role == admin and message.sender_id == actor.id)
            or (
                rcpt_role == admin
                and (message.recipient_id is None or message.recipient_id == actor.id)
            )
            or message.recipient_id == actor.id
        )
    if role == counselor:
        return (
            (
                rcpt_role == counselor
                and (message.recipient_id is None or message.recipient_id == actor.id)
            )
            or resolve_conversation_id(message, actor).startswith(STUDENT_THREAD_PREFIX)
            or (sender_role == counselor and message.sender_id == actor.id)
        )
    if role == referral:
        return (
            sender_role == referral
            and _coalesce(message.sender_id, message.user_id) == actor.id
            and rcpt_role == counselor
        ) or (
            rcpt_role == referral
            and _coalesce(message.recipient_id, message.user_id) == actor.id
            and sender_role == counselor
        )
    if role in STUDENT_SIDE_ROLES:
        return message.user_id == actor.id
    raise _forbidden()


# ── Addressing: the message is incoming for the actor ─────────────────────────


def addressed_to_clause(c: RowColumns, actor: Actor) -> ColumnElement[bool]:
    role = actor.role
    if role == Role.ADMIN.value:
        return or_(
            c.recipient_id == actor.id,
            and_(c.recipient_id.is_(None), c.recipient_role == Role.ADMIN.value),
        )
    if role == Role.COUNSELOR.value:
        return and_(
            c.recipient_role == Role.COUNSELOR.value,
            or_(c.recipient_id.is_(None), c.recipient_id == actor.id),
        )
    if role == Role.REFERRAL_USER.value:
        return and_(
            c.recipient_role == Role.REFERRAL_USER.value,
            func.coalesce(c.recipient_id, c.user_id) == actor.id,
        )
    if role in STUDENT_SIDE_ROLES:
        return and_(c.user_id == actor.id, c.sender_role.in_(_STAFF_SENDERS))
    return false()


def is_addressed_to(message: Any, actor: Actor) -> bool:
    role = actor.role
    sender_role = normalize_role(message.sender)
    rcpt_role = normalize_role(message.recipient_role)
    if role == Role.ADMIN.value:
        return message.recipient_id == actor.id or (
            message.recipient_id is None and rcpt_role == Role.ADMIN.value
        )
    if role == Role.COUNSELOR.value:
        return rcpt_role == Role.COUNSELOR.value and (
            message.recipient_id is None or message.recipient_id == actor.id
        )
    if role == Role.REFERRAL_USER.value:
        return (
            rcpt_role == Role.REFERRAL_USER.value
            and _coalesce(message.recipient_id, message.user_id) == actor.id
        )
    if role in STUDENT_SIDE_ROLES:
        return message.user_id == actor.id and sender_role in _STAFF_SENDERS
    return False


# ── Read flags ────────────────────────────────────────────────────────────────


def read_columns_for_role(role: str) -> ReadColumns:
    if role == Role.ADMIN.value:
        schema = get_admin_read_schema()
        return ReadColumns(schema.flag.value, schema.read_at)
    if role == Role.COUNSELOR.value:
        return STAFF_READ
    return ORIGINATOR_READ


def read_columns_for(actor: Actor) -> ReadColumns:
    """Flag (and timestamp) column that records whether ``actor``'s side read a row."""
    if actor.role not in MESSAGING_ROLES:
        raise _forbidden()
    return read_columns_for_role(actor.role)


def message_column(name: str) -> ColumnElement:
    """A ``messages`` column by name, including ones the ORM does not map."""
    table_columns = Message.__table__.c
    if name in table_columns:
        return table_columns[name]
    return literal_column(f"messages.{name}", Boolean)


def read_flag_column(actor: Actor) -> ColumnElement:
    return message_column(read_columns_for(actor).flag)


def unread_clause(flag: ColumnElement) -> ColumnElement[bool]:
    """NULL, false and 0 all count as unread on every backend."""
    return func.coalesce(cast(flag, Integer), 0) == 0
