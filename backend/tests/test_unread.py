"""Tests for app.services.unread.count_unread_conversations."""
from __future__ import annotations

from datetime import timedelta

from sqlalchemy import text

from app.services.actor import Actor
from app.services.deletion_ledger import delete_conversation
from app.services.schema_probe import (
    AdminReadColumn,
    AdminReadSchema,
    configure_admin_read_schema,
    set_admin_read_schema,
)
from app.services.unread import count_unread_conversations

from conftest import BASE_TIME


class TestCounselorUnread:

    def test_earlier_unread_message_counts_even_if_latest_is_read(
        self, db_session, make_user, make_message
    ):
        counselor_user = make_user("Guidance Counselor")
        student = make_user("student")
        counselor = Actor.from_user(counselor_user)

        make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                     user_id=student.id, counselor_is_read=False, minutes=0)
        make_message(sender="counselor", sender_id=counselor_user.id, recipient_role="student",
                     recipient_id=student.id, user_id=student.id, counselor_is_read=True,
                     minutes=5)

        assert count_unread_conversations(db_session, counselor) == 1

    def test_own_unread_sent_messages_do_not_count(self, db_session, make_user, make_message):
        counselor_user = make_user("counselor")
        student = make_user("student")
        make_message(sender="counselor", sender_id=counselor_user.id, recipient_role="student",
                     recipient_id=student.id, user_id=student.id, counselor_is_read=False)

        assert count_unread_conversations(db_session, Actor.from_user(counselor_user)) == 0

    def test_counts_conversations_not_messages(self, db_session, make_user, make_message):
        counselor = Actor.from_user(make_user("counselor"))
        first = make_user("student")
        second = make_user("guest")
        for minutes in (0, 1, 2):
            make_message(sender="student", sender_id=first.id, recipient_role="counselor",
                         user_id=first.id, minutes=minutes)
        make_message(sender="guest", sender_id=second.id, recipient_role="counselor",
                     user_id=second.id, counselor_is_read=None)
        make_message(sender="student", sender_id=first.id, recipient_role="counselor",
                     user_id=first.id, counselor_is_read=True, minutes=3)

        assert count_unread_conversations(db_session, counselor) == 2

    def test_deleted_conversation_is_not_counted_until_new_message(
        self, db_session, make_user, make_message
    ):
        counselor = Actor.from_user(make_user("counselor"))
        student = make_user("student")
        make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                     user_id=student.id, minutes=0)
        delete_conversation(db_session, counselor, f"student-{student.id}",
                            now=BASE_TIME + timedelta(minutes=1))
        assert count_unread_conversations(db_session, counselor) == 0

        make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                     user_id=student.id, minutes=2)
        assert count_unread_conversations(db_session, counselor) == 1


class TestOtherRoles:

    def test_student_counts_staff_replies(self, db_session, make_user, make_message):
        counselor = make_user("counselor")
        student_user = make_user("student")
        make_message(sender="student", sender_id=student_user.id, recipient_role="counselor",
                     user_id=student_user.id, is_read=False)
        student = Actor.from_user(student_user)
        assert count_unread_conversations(db_session, student) == 0

        make_message(sender="counselor", sender_id=counselor.id, recipient_role="student",
                     recipient_id=student_user.id, user_id=student_user.id, is_read=False)
        assert count_unread_conversations(db_session, student) == 1

    def test_referral_user_counts_each_counselor_dyad(self, db_session, make_user, make_message):
        dean_user = make_user("Dean")
        one = make_user("counselor")
        two = make_user("counselor")
        for counselor in (one, two):
            make_message(sender="counselor", sender_id=counselor.id, recipient_role="dean",
                         recipient_id=dean_user.id, user_id=dean_user.id, is_read=False)
        assert count_unread_conversations(db_session, Actor.from_user(dean_user)) == 2

    def test_admin_fallback_flag(self, db_session, make_user, make_message):
        admin_user = make_user("admin")
        counselor = make_user("counselor")
        admin = Actor.from_user(admin_user)
        make_message(sender="admin", sender_id=admin_user.id, recipient_role="counselor",
                     recipient_id=counselor.id, user_id=admin_user.id, counselor_is_read=False)
        assert count_unread_conversations(db_session, admin) == 0

        make_message(sender="counselor", sender_id=counselor.id, recipient_role="admin",
                     recipient_id=admin_user.id, user_id=counselor.id, counselor_is_read=False)
        assert count_unread_conversations(db_session, admin) == 1

    def test_admin_dedicated_column(self, db_session, make_user, make_message):
        admin_user = make_user("admin")
        counselor = make_user("counselor")
        # Inside the test transaction, so the column is rolled back afterwards.
        db_session.execute(text("ALTER TABLE messages ADD COLUMN admin_is_read BOOLEAN"))
        schema = configure_admin_read_schema(db_session.connection())
        assert schema.flag.value == "admin_is_read"
        assert schema.read_at is None

        message = make_message(sender="counselor", sender_id=counselor.id, recipient_role="admin",
                               user_id=counselor.id, counselor_is_read=True)
        admin = Actor.from_user(admin_user)
        # NULL in the admin column counts as unread.
        assert count_unread_conversations(db_session, admin) == 1

        db_session.execute(
            text("UPDATE messages SET admin_is_read = 1 WHERE id = :id"), {"id": message.id}
        )
        assert count_unread_conversations(db_session, admin) == 0

    def test_unknown_role_counts_zero(self, db_session):
        assert count_unread_conversations(db_session, Actor(id=1, role="librarian")) == 0


class TestErrorBoundary:

    def test_query_failure_reports_zero(self, db_session, make_user, monkeypatch, caplog):
        counselor = Actor.from_user(make_user("counselor"))

        def _boom(actor):
            raise RuntimeError("broken query")

        monkeypatch.setattr("app.services.unread.unread_conversations_query", _boom)
        assert count_unread_conversations(db_session, counselor) == 0
        assert "unread count failed" in caplog.text

    def test_missing_admin_column_leaves_session_usable(
        self, db_session, make_user, make_message, caplog
    ):
        admin = Actor.from_user(make_user("admin"))
        counselor = Actor.from_user(make_user("counselor"))
        student = make_user("student")
        make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                     user_id=student.id)
        set_admin_read_schema(AdminReadSchema(AdminReadColumn.READ_BY_ADMIN, None))

        assert count_unread_conversations(db_session, admin) == 0
        assert "unread count failed" in caplog.text
        assert count_unread_conversations(db_session, counselor) == 1
