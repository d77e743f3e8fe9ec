"""Canonical conversation identity.

Message rows carry a ``conversation_id`` column, but historical rows have it
empty, in retired formats, or missing entirely. The canonical key is therefore
always re-derived from the sender/recipient roles and ids, from the point of
view of the actor reading the row:

0. Pair keys that do not depend on the viewer
   - referral user <-> counselor: ``referral_user-{ref}-counselor-{counselor}``
   - any thread with a student/guest party: ``student-{id}``
   - counselor <-> counselor: ``counselor-{low}-{high}``, office broadcast
     ``counselor-office``
   The referral/student side falls back to the owner ``user_id`` when its own
   id column is empty (pre-migration rows).
1. Addressed to the viewer: the sender's party key.
2. Sent by the viewer to a specific user: the recipient's party key.
3. Broadcast to the viewer's role: the sender's party key.
4. Referral fallbacks, then ``{role}-{id}`` of the non-viewer side when
   neither role is recognised.
5. The stored ``conversation_id`` if non-empty, else ``msg-{id}``.

``resolve_conversation_id`` and ``conversation_key_expr`` implement the same
rules in Python and SQL respectively; inbox lists and badge counts group by
the SQL form, DTOs and writes use the Python form.
"""

from __future__ import annotations

import re
from typing import Any, NamedTuple

from sqlalchemy import String, and_, case, cast, func, literal, null, type_coerce
from sqlalchemy.sql.elements import ColumnElement

from app.services.actor import Actor
from app.services.roles import (
    CANONICAL_ROLES,
    STUDENT_SIDE_ROLES,
    Role,
    is_student_side,
    normalize_role,
)

COUNSELOR_OFFICE = "counselor-office"

_STUDENT_SIDE = tuple(sorted(STUDENT_SIDE_ROLES))
_CANONICAL = tuple(sorted(CANONICAL_ROLES))

_REFERRAL_DYAD_RE = re.compile(r"^referral_user-(\d+)-counselor-(\d+)$")


# ── Id builders ───────────────────────────────────────────────────────────────


def student_conversation_id(student_id: int) -> str:
    return f"student-{student_id}"


def referral_conversation_id(referral_user_id: int, counselor_id: int) -> str:
    return f"referral_user-{referral_user_id}-counselor-{counselor_id}"


def counselor_pair_conversation_id(a: int, b: int) -> str:
    low, high = min(a, b), max(a, b)
    return f"counselor-{low}-{high}"


def is_referral_dyad_id(conversation_id: str | None) -> bool:
    return bool(_REFERRAL_DYAD_RE.match((conversation_id or "").strip(" ")))


def parse_referral_dyad_id(conversation_id: str | None) -> tuple[int, int] | None:
    """Return ``(referral_user_id, counselor_id)`` for a dyadic id, else None."""
    match = _REFERRAL_DYAD_RE.match((conversation_id or "").strip(" "))
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


def legacy_referral_prefix(conversation_id: str | None) -> str | None:
    """``referral_user-7-counselor-3`` -> ``referral_user-7`` (the pre-dyad key)."""
    parsed = parse_referral_dyad_id(conversation_id)
    if parsed is None:
        return None
    return f"referral_user-{parsed[0]}"


# ── In-process resolver ───────────────────────────────────────────────────────


def _party_key(role: str, party_id: int | None) -> str | None:
    if party_id is None or role == "":
        return None
    if is_student_side(role):
        return student_conversation_id(party_id)
    return f"{role}-{party_id}"


def _pair_key(
    sender_role: str,
    sender_id: int | None,
    recipient_role: str,
    recipient_id: int | None,
    owner_id: int | None,
) -> str | None:
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value

    if sender_role == referral and recipient_role == counselor:
        ref_id = sender_id if sender_id is not None else owner_id
        if ref_id is not None and recipient_id is not None:
            return referral_conversation_id(ref_id, recipient_id)
    if sender_role == counselor and recipient_role == referral:
        ref_id = recipient_id if recipient_id is not None else owner_id
        if ref_id is not None and sender_id is not None:
            return referral_conversation_id(ref_id, sender_id)

    if is_student_side(sender_role):
        student_id = sender_id if sender_id is not None else owner_id
        if student_id is not None:
            return student_conversation_id(student_id)
    if is_student_side(recipient_role):
        student_id = recipient_id if recipient_id is not None else owner_id
        if student_id is not None:
            return student_conversation_id(student_id)

    if sender_role == counselor and recipient_role == counselor:
        if recipient_id is None:
            return COUNSELOR_OFFICE
        if sender_id is not None:
            return counselor_pair_conversation_id(sender_id, recipient_id)
    return None


def derive_conversation_id(
    *,
    message_id: int | None,
    sender: str | None,
    sender_id: int | None,
    recipient_role: str | None,
    recipient_id: int | None,
    owner_id: int | None,
    stored_conversation_id: str | None,
    viewpoint: Actor,
) -> str:
    sender_role = normalize_role(sender)
    rcpt_role = normalize_role(recipient_role)

    key = _pair_key(sender_role, sender_id, rcpt_role, recipient_id, owner_id)
    if key is not None:
        return key

    if recipient_id is not None and recipient_id == viewpoint.id:
        key = _party_key(sender_role, sender_id)
        if key is not None:
            return key

    if sender_id is not None and sender_id == viewpoint.id:
        key = _party_key(rcpt_role, recipient_id)
        if key is not None:
            return key

    if recipient_id is None and rcpt_role != "" and rcpt_role == viewpoint.role:
        key = _party_key(sender_role, sender_id)
        if key is not None:
            return key

    if sender_role == Role.REFERRAL_USER.value and sender_id is not None:
        return f"{Role.REFERRAL_USER.value}-{sender_id}"
    if rcpt_role == Role.REFERRAL_USER.value and recipient_id is not None:
        return f"{Role.REFERRAL_USER.value}-{recipient_id}"

    if (
        sender_role not in CANONICAL_ROLES
        and rcpt_role not in CANONICAL_ROLES
        and sender_id is not None
        and recipient_id is not None
    ):
        if sender_id != viewpoint.id:
            key = _party_key(sender_role, sender_id)
        else:
            key = _party_key(rcpt_role, recipient_id)
        if key is not None:
            return key

    stored = (stored_conversation_id or "").strip(" ")
    if stored:
        return stored
    return f"msg-{message_id}"


def resolve_conversation_id(message: Any, viewpoint: Actor) -> str:
    """Canonical conversation key of ``message`` as seen by ``viewpoint``."""
    return derive_conversation_id(
        message_id=message.id,
        sender=message.sender,
        sender_id=message.sender_id,
        recipient_role=message.recipient_role,
        recipient_id=message.recipient_id,
        owner_id=message.user_id,
        stored_conversation_id=message.conversation_id,
        viewpoint=viewpoint,
    )


# ── SQL twin ──────────────────────────────────────────────────────────────────


class KeyColumns(NamedTuple):
    """Columns the key expression reads; roles must already be normalised."""

    id: ColumnElement
    sender_id: ColumnElement
    recipient_id: ColumnElement
    user_id: ColumnElement
    conversation_id: ColumnElement
    sender_role: ColumnElement
    recipient_role: ColumnElement


def _as_text(value: ColumnElement) -> ColumnElement[str]:
    return cast(value, String)


def _concat(*parts: ColumnElement | str) -> ColumnElement[str]:
    expr = None
    for part in parts:
        piece = literal(part, String) if isinstance(part, str) else type_coerce(part, String)
        expr = piece if expr is None else expr + piece
    return expr


def _party_key_expr(role: ColumnElement, party_id: ColumnElement) -> ColumnElement[str]:
    return case(
        (role.in_(_STUDENT_SIDE), _concat("student-", _as_text(party_id))),
        else_=_concat(role, "-", _as_text(party_id)),
    )


def _has_party(role: ColumnElement, party_id: ColumnElement) -> ColumnElement[bool]:
    return and_(party_id.isnot(None), role != "")


def referral_ref_id_expr(cols: KeyColumns) -> ColumnElement:
    """Referral-side id of a referral/counselor dyad row (NULL for other rows)."""
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value
    return case(
        (
            and_(cols.sender_role == referral, cols.recipient_role == counselor),
            func.coalesce(cols.sender_id, cols.user_id),
        ),
        (
            and_(cols.sender_role == counselor, cols.recipient_role == referral),
            func.coalesce(cols.recipient_id, cols.user_id),
        ),
        else_=null(),
    )


def legacy_referral_key_expr(cols: KeyColumns) -> ColumnElement[str]:
    """``referral_user-{ref}`` for dyad rows, matching pre-dyad deletion rows."""
    ref_id = referral_ref_id_expr(cols)
    return case(
        (
            and_(ref_id.isnot(None), _dyad_peer_expr(cols).isnot(None)),
            _concat("referral_user-", _as_text(ref_id)),
        ),
        else_=null(),
    )


def _dyad_peer_expr(cols: KeyColumns) -> ColumnElement:
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value
    return case(
        (
            and_(cols.sender_role == referral, cols.recipient_role == counselor),
            cols.recipient_id,
        ),
        (
            and_(cols.sender_role == counselor, cols.recipient_role == referral),
            cols.sender_id,
        ),
        else_=null(),
    )


def conversation_key_expr(cols: KeyColumns, viewpoint: Actor) -> ColumnElement[str]:
    """SQL expression equal to ``resolve_conversation_id`` for every row."""
    counselor = Role.COUNSELOR.value
    referral = Role.REFERRAL_USER.value
    sender_role, rcpt_role = cols.sender_role, cols.recipient_role

    ref_id = referral_ref_id_expr(cols)
    peer_id = _dyad_peer_expr(cols)
    student_from_sender = func.coalesce(cols.sender_id, cols.user_id)
    student_from_recipient = func.coalesce(cols.recipient_id, cols.user_id)
    low = case((cols.sender_id < cols.recipient_id, cols.sender_id), else_=cols.recipient_id)
    high = case((cols.sender_id < cols.recipient_id, cols.recipient_id), else_=cols.sender_id)
    unrecognised = and_(
        sender_role.notin_(_CANONICAL),
        rcpt_role.notin_(_CANONICAL),
        cols.sender_id.isnot(None),
        cols.recipient_id.isnot(None),
    )
    stored = func.trim(func.coalesce(cols.conversation_id, ""))

    return case(
        # 0. pair keys
        (
            and_(ref_id.isnot(None), peer_id.isnot(None)),
            _concat("referral_user-", _as_text(ref_id), "-counselor-", _as_text(peer_id)),
        ),
        (
            and_(sender_role.in_(_STUDENT_SIDE), student_from_sender.isnot(None)),
            _concat("student-", _as_text(student_from_sender)),
        ),
        (
            and_(rcpt_role.in_(_STUDENT_SIDE), student_from_recipient.isnot(None)),
            _concat("student-", _as_text(student_from_recipient)),
        ),
        (
            and_(sender_role == counselor, rcpt_role == counselor, cols.recipient_id.is_(None)),
            literal(COUNSELOR_OFFICE, String),
        ),
        (
            and_(sender_role == counselor, rcpt_role == counselor, cols.sender_id.isnot(None)),
            _concat("counselor-", _as_text(low), "-", _as_text(high)),
        ),
        # 1. addressed to the viewer
        (
            and_(cols.recipient_id == viewpoint.id, _has_party(sender_role, cols.sender_id)),
            _party_key_expr(sender_role, cols.sender_id),
        ),
        # 2. sent by the viewer
        (
            and_(cols.sender_id == viewpoint.id, _has_party(rcpt_role, cols.recipient_id)),
            _party_key_expr(rcpt_role, cols.recipient_id),
        ),
        # 3. broadcast to the viewer's role
        (
            and_(
                cols.recipient_id.is_(None),
                rcpt_role != "",
                rcpt_role == viewpoint.role,
                _has_party(sender_role, cols.sender_id),
            ),
            _party_key_expr(sender_role, cols.sender_id),
        ),
        # 4. referral fallbacks, then unrecognised roles
        (
            and_(sender_role == referral, cols.sender_id.isnot(None)),
            _concat("referral_user-", _as_text(cols.sender_id)),
        ),
        (
            and_(rcpt_role == referral, cols.recipient_id.isnot(None)),
            _concat("referral_user-", _as_text(cols.recipient_id)),
        ),
        (
            and_(unrecognised, cols.sender_id != viewpoint.id, sender_role != ""),
            _party_key_expr(sender_role, cols.sender_id),
        ),
        (
            and_(unrecognised, cols.sender_id == viewpoint.id, rcpt_role != ""),
            _party_key_expr(rcpt_role, cols.recipient_id),
        ),
        # 5. stored id, then per-message fallback
        (stored != "", stored),
        else_=_concat("msg-", _as_text(cols.id)),
    )
