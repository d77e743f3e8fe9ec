"""Tests for app.services.participation and the visible-rows query."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from app.models.message import Message
from app.services.actor import Actor
from app.services.errors import ForbiddenError
from app.services.message_query import visible_messages
from app.services.participation import (
    is_addressed_to,
    is_visible,
    read_columns_for,
    visibility_clause,
)
from app.services.schema_probe import AdminReadColumn, AdminReadSchema, set_admin_read_schema


def _visible_ids(db_session, actor: Actor) -> set[int]:
    visible = visible_messages(actor, apply_deletions=False)
    return set(db_session.scalars(select(visible.c.id)))


@pytest.fixture()
def cast_of_users(make_user):
    return {
        "admin": make_user("Administrator"),
        "admin2": make_user("admin"),
        "counselor": make_user("Guidance Counselor"),
        "colleague": make_user("Counselor"),
        "third": make_user("counselor"),
        "student": make_user("Student"),
        "student2": make_user("student"),
        "dean": make_user("Dean"),
        "registrar": make_user("Registrar"),
    }


@pytest.fixture()
def inbox_rows(cast_of_users, make_message):
    u = cast_of_users
    rows = {}
    rows["student_to_office"] = make_message(
        sender="student", sender_id=u["student"].id, recipient_role="counselor",
        user_id=u["student"].id,
    )
    rows["colleague_to_student"] = make_message(
        sender="counselor", sender_id=u["colleague"].id, recipient_role="student",
        recipient_id=u["student"].id, user_id=u["student"].id,
    )
    rows["student2_to_admin"] = make_message(
        sender="student", sender_id=u["student2"].id, recipient_role="admin",
        user_id=u["student2"].id,
    )
    rows["admin_to_counselor"] = make_message(
        sender="admin", sender_id=u["admin"].id, recipient_role="counselor",
        recipient_id=u["counselor"].id, user_id=u["admin"].id,
    )
    rows["admin2_to_colleague"] = make_message(
        sender="admin", sender_id=u["admin2"].id, recipient_role="counselor",
        recipient_id=u["colleague"].id, user_id=u["admin2"].id,
    )
    rows["counselor_to_admin_office"] = make_message(
        sender="counselor", sender_id=u["counselor"].id, recipient_role="admin",
        user_id=u["counselor"].id,
    )
    rows["mislabelled_to_admin"] = make_message(
        sender="counselor", sender_id=u["colleague"].id, recipient_role="counselor",
        recipient_id=u["admin"].id, user_id=u["colleague"].id,
    )
    rows["colleague_to_third"] = make_message(
        sender="counselor", sender_id=u["colleague"].id, recipient_role="counselor",
        recipient_id=u["third"].id, user_id=u["colleague"].id,
    )
    rows["office_broadcast"] = make_message(
        sender="counselor", sender_id=u["colleague"].id, recipient_role="counselor",
        user_id=u["colleague"].id,
    )
    rows["dean_to_counselor"] = make_message(
        sender="Dean", sender_id=u["dean"].id, recipient_role="counselor",
        recipient_id=u["counselor"].id, user_id=u["dean"].id,
    )
    rows["counselor_to_dean"] = make_message(
        sender="counselor", sender_id=u["counselor"].id, recipient_role="program chair",
        recipient_id=u["dean"].id, user_id=u["dean"].id,
    )
    rows["registrar_to_colleague"] = make_message(
        sender="registrar", sender_id=u["registrar"].id, recipient_role="counselor",
        recipient_id=u["colleague"].id, user_id=u["registrar"].id,
    )
    rows["admin_to_dean"] = make_message(
        sender="admin", sender_id=u["admin"].id, recipient_role="dean",
        recipient_id=u["dean"].id, user_id=u["admin"].id,
    )
    return rows


def _names(rows, ids):
    return {name for name, message in rows.items() if message.id in ids}


class TestVisibilityByRole:

    def test_admin(self, db_session, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["admin"])
        assert _names(inbox_rows, _visible_ids(db_session, actor)) == {
            "student2_to_admin",
            "admin_to_counselor",
            "counselor_to_admin_office",
            "mislabelled_to_admin",
            "admin_to_dean",
        }

    def test_counselor_sees_all_student_threads(self, db_session, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["counselor"])
        assert _names(inbox_rows, _visible_ids(db_session, actor)) == {
            "student_to_office",
            "colleague_to_student",
            "student2_to_admin",
            "admin_to_counselor",
            "counselor_to_admin_office",
            "office_broadcast",
            "dean_to_counselor",
            "counselor_to_dean",
        }

    def test_referral_user_is_strictly_one_to_one(self, db_session, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["dean"])
        assert _names(inbox_rows, _visible_ids(db_session, actor)) == {
            "dean_to_counselor",
            "counselor_to_dean",
        }

    def test_student_sees_only_owned_rows(self, db_session, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["student"])
        assert _names(inbox_rows, _visible_ids(db_session, actor)) == {
            "student_to_office",
            "colleague_to_student",
        }

    def test_unrecognised_role_is_forbidden(self):
        with pytest.raises(ForbiddenError):
            visibility_clause(None, Actor(id=1, role="librarian"))
        with pytest.raises(ForbiddenError):
            read_columns_for(Actor(id=1, role="system"))

    def test_soft_deleted_rows_are_never_visible(self, db_session, cast_of_users, inbox_rows):
        inbox_rows["student_to_office"].deleted_at = datetime.now(timezone.utc)
        db_session.flush()
        actor = Actor.from_user(cast_of_users["student"])
        assert _names(inbox_rows, _visible_ids(db_session, actor)) == {"colleague_to_student"}
        assert not is_visible(inbox_rows["student_to_office"], actor)


class TestPythonTwin:

    @pytest.mark.parametrize(
        "who", ["admin", "admin2", "counselor", "colleague", "third", "student", "student2",
                "dean", "registrar"],
    )
    def test_is_visible_matches_sql(self, db_session, cast_of_users, inbox_rows, who):
        actor = Actor.from_user(cast_of_users[who])
        sql_ids = _visible_ids(db_session, actor)
        python_ids = {
            m.id for m in db_session.query(Message).all() if is_visible(m, actor)
        }
        assert sql_ids == python_ids


class TestAddressing:

    def test_admin_addressing(self, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["admin"])
        assert is_addressed_to(inbox_rows["counselor_to_admin_office"], actor)
        assert is_addressed_to(inbox_rows["mislabelled_to_admin"], actor)
        assert not is_addressed_to(inbox_rows["admin_to_counselor"], actor)

    def test_counselor_addressing(self, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["counselor"])
        assert is_addressed_to(inbox_rows["student_to_office"], actor)
        assert is_addressed_to(inbox_rows["dean_to_counselor"], actor)
        assert not is_addressed_to(inbox_rows["colleague_to_student"], actor)
        assert not is_addressed_to(inbox_rows["registrar_to_colleague"], actor)

    def test_student_addressing(self, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["student"])
        assert is_addressed_to(inbox_rows["colleague_to_student"], actor)
        assert not is_addressed_to(inbox_rows["student_to_office"], actor)

    def test_referral_addressing(self, cast_of_users, inbox_rows):
        actor = Actor.from_user(cast_of_users["dean"])
        assert is_addressed_to(inbox_rows["counselor_to_dean"], actor)
        assert not is_addressed_to(inbox_rows["dean_to_counselor"], actor)


class TestReadColumns:

    def test_staff_and_originator_columns(self):
        assert read_columns_for(Actor(id=1, role="counselor")).flag == "counselor_is_read"
        assert read_columns_for(Actor(id=1, role="student")).flag == "is_read"
        assert read_columns_for(Actor(id=1, role="referral_user")).flag == "is_read"

    def test_admin_falls_back_to_staff_flag(self):
        cols = read_columns_for(Actor(id=1, role="admin"))
        assert cols.flag == "counselor_is_read"
        assert cols.read_at == "counselor_read_at"

    def test_admin_uses_probed_column(self):
        set_admin_read_schema(AdminReadSchema(AdminReadColumn.READ_BY_ADMIN, None))
        cols = read_columns_for(Actor(id=1, role="admin"))
        assert cols.flag == "read_by_admin"
        assert cols.read_at is None
