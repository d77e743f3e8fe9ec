"""Tests for the role-agnostic /messages endpoints and conversation aliases."""

from __future__ import annotations

import pytest

from conftest import auth


class TestUnreadCount:

    def test_counts_conversations(self, client, make_user, make_message):
        counselor = make_user("Counselor")
        for _ in range(2):
            student = make_user("student")
            make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                         user_id=student.id)
            make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                         user_id=student.id, minutes=1)

        response = client.get("/messages/unread-count", headers=auth(counselor))
        assert response.status_code == 200
        assert response.json() == {"unread_conversations": 2}

    @pytest.mark.parametrize("role", ["system", "Librarian"])
    def test_non_messaging_roles_are_forbidden(self, client, make_user, role):
        user = make_user(role)
        assert client.get("/messages/unread-count", headers=auth(user)).status_code == 403

    def test_requires_authentication(self, client):
        assert client.get("/messages/unread-count").status_code == 401


class TestOwnMessages:

    def test_edit_and_delete(self, client, make_user):
        student = make_user("student")
        message_id = client.post(
            "/student/messages", json={"content": "Typo hre"}, headers=auth(student)
        ).json()["id"]

        response = client.patch(
            f"/messages/{message_id}", json={"content": "Typo here"}, headers=auth(student)
        )
        assert response.status_code == 200
        assert response.json()["content"] == "Typo here"

        assert client.delete(f"/messages/{message_id}", headers=auth(student)).status_code == 204
        assert client.delete(f"/messages/{message_id}", headers=auth(student)).status_code == 404
        assert client.get("/student/messages", headers=auth(student)).json()["total"] == 0

    def test_cannot_touch_someone_elses_message(self, client, make_user):
        author = make_user("student")
        other = make_user("student")
        message_id = client.post(
            "/student/messages", json={"content": "Mine"}, headers=auth(author)
        ).json()["id"]

        response = client.put(
            f"/messages/{message_id}", json={"content": "Theirs"}, headers=auth(other)
        )
        assert response.status_code == 403

    def test_missing_message(self, client, make_user):
        student = make_user("student")
        assert client.delete("/messages/999999", headers=auth(student)).status_code == 404


class TestConversationDeleteAliases:

    @pytest.mark.parametrize(
        "path",
        [
            "/messages/conversations/{key}",
            "/messages/thread/{key}",
            "/conversations/{key}",
        ],
    )
    def test_alias_hides_conversation(self, client, make_user, make_message, path):
        counselor = make_user("counselor")
        student = make_user("student")
        make_message(sender="student", sender_id=student.id, recipient_role="counselor",
                     user_id=student.id)
        key = f"student-{student.id}"

        response = client.delete(path.format(key=key), headers=auth(counselor))
        assert response.status_code == 200
        assert response.json()["conversation_id"] == key

        assert client.get("/counselor/messages", headers=auth(counselor)).json()["total"] == 0
        badge = client.get("/messages/unread-count", headers=auth(counselor)).json()
        assert badge == {"unread_conversations": 0}

    def test_repeat_delete_is_idempotent(self, client, make_user):
        dean = make_user("Dean")
        first = client.delete("/conversations/referral_user-1", headers=auth(dean))
        second = client.delete("/conversations/referral_user-1", headers=auth(dean))
        assert first.status_code == second.status_code == 200

    def test_blank_id_is_rejected(self, client, make_user):
        dean = make_user("Dean")
        response = client.delete("/messages/conversations/%20%20", headers=auth(dean))
        assert response.status_code == 422
