"""
Tests for the message endpoints.

Tests cover:
- Student submission defaults and required fields (400)
- school_class derivation and theme_id validation
- Client IP capture from X-Forwarded-For
- Staff listing with theme titles, newest first
- Mark-read semantics
- Teacher log projection
- End-to-end theme -> message -> staff list -> teacher log
"""

import pytest

from conftest import create_theme, submit_message
from otayori.errors import ValidationError
from otayori.models import Message
from otayori.schemas import MessageSubmitRequest
from otayori.services import MessageService
from otayori.storage import SessionLocal


LOG_FIELDS = {
    "id",
    "sender_name",
    "radio_name",
    "school_class",
    "content",
    "ip_address",
    "created_at",
    "theme_title",
}


def count_messages() -> int:
    with SessionLocal() as db:
        return db.query(Message).count()


class TestSubmitMessage:
    """Test POST /api/student/messages."""

    def test_minimal_submission(self, client):
        response = client.post(
            "/api/student/messages",
            json={"radio_name": "Taro", "content": "hello"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert isinstance(data["id"], int)
        assert data["message"] == "お便りを送信しました"

        stored = client.get("/api/staff/messages").json()[0]
        assert stored["id"] == data["id"]
        assert stored["sender_name"] is None
        assert stored["school_class"] is None
        assert stored["theme_id"] is None
        assert stored["theme_title"] is None
        assert stored["is_read"] is False
        assert stored["share_name"] is False
        assert stored["share_class"] is False
        assert stored["share_theme"] is False

    def test_school_class_derived(self, client):
        submit_message(client, school_year="2", school_class="B")

        stored = client.get("/api/staff/messages").json()[0]
        assert stored["school_class"] == "2年B組"

    def test_school_class_numeric_year(self, client):
        submit_message(client, school_year=3, school_class="1")

        assert client.get("/api/staff/messages").json()[0]["school_class"] == "3年1組"

    @pytest.mark.parametrize("fields", [{"school_year": "2"}, {"school_class": "B"}, {"school_year": "", "school_class": "B"}])
    def test_school_class_needs_both(self, client, fields):
        submit_message(client, **fields)

        assert client.get("/api/staff/messages").json()[0]["school_class"] is None

    def test_share_flags_stored(self, client):
        submit_message(client, share_name=True, share_class=False, share_theme=True)

        stored = client.get("/api/staff/messages").json()[0]
        assert stored["share_name"] is True
        assert stored["share_class"] is False
        assert stored["share_theme"] is True

    @pytest.mark.parametrize(
        "body",
        [
            {"radio_name": "Taro", "content": ""},
            {"radio_name": "Taro"},
            {"radio_name": "", "content": "hello"},
            {"content": "hello"},
            {"radio_name": "Taro", "content": "   "},
        ],
    )
    def test_required_fields(self, client, body):
        """Test missing radio_name/content is rejected and nothing is stored."""
        response = client.post("/api/student/messages", json=body)

        assert response.status_code == 400
        assert "error" in response.json()
        assert count_messages() == 0

    @pytest.mark.parametrize(
        "theme_id",
        ["abc", "0", -3, "1e3", "1 2", True, 2.0, "99999999999999999999", 99999999999999999999],
    )
    def test_malformed_theme_id(self, client, theme_id):
        response = client.post(
            "/api/student/messages",
            json={"radio_name": "Taro", "content": "hello", "theme_id": theme_id},
        )

        assert response.status_code == 400
        assert count_messages() == 0

    def test_dangling_theme_id_accepted(self, client):
        """Test a well-formed id of a missing theme is stored as-is."""
        submit_message(client, theme_id=424242)

        stored = client.get("/api/staff/messages").json()[0]
        assert stored["theme_id"] == 424242
        assert stored["theme_title"] is None

    def test_theme_id_as_string(self, client):
        theme = create_theme(client, "夏休み")
        submit_message(client, theme_id=str(theme["id"]))

        assert client.get("/api/staff/messages").json()[0]["theme_title"] == "夏休み"

    def test_empty_theme_id_is_absent(self, client):
        submit_message(client, theme_id="")

        assert client.get("/api/staff/messages").json()[0]["theme_id"] is None

    def test_forwarded_ip_captured(self, client):
        response = client.post(
            "/api/student/messages",
            json={"radio_name": "Taro", "content": "hello"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        assert response.status_code == 200

        assert client.get("/api/teacher/logs").json()[0]["ip_address"] == "203.0.113.7"

    def test_peer_ip_fallback(self, client):
        submit_message(client)

        assert client.get("/api/teacher/logs").json()[0]["ip_address"] == "testclient"


class TestStaffMessages:
    """Test GET /api/staff/messages and PUT /api/staff/messages/{id}/read."""

    def test_empty(self, client):
        response = client.get("/api/staff/messages")

        assert response.status_code == 200
        assert response.json() == []

    def test_newest_first(self, client):
        ids = [submit_message(client, content=f"m{i}")["id"] for i in range(3)]

        listed = [m["id"] for m in client.get("/api/staff/messages").json()]
        assert listed == list(reversed(ids))

    def test_theme_title_after_deactivation(self, client):
        """Test a deactivated theme still lends its title to its messages."""
        theme = create_theme(client, "卒業")
        submit_message(client, theme_id=theme["id"])
        client.delete(f"/api/staff/themes/{theme['id']}")

        assert client.get("/api/staff/messages").json()[0]["theme_title"] == "卒業"

    def test_mark_read(self, client):
        message_id = submit_message(client)["id"]

        response = client.put(f"/api/staff/messages/{message_id}/read")

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert client.get("/api/staff/messages").json()[0]["is_read"] is True

    def test_mark_read_idempotent(self, client):
        message_id = submit_message(client)["id"]

        for _ in range(2):
            assert client.put(f"/api/staff/messages/{message_id}/read").status_code == 200

        assert client.get("/api/staff/messages").json()[0]["is_read"] is True

    def test_mark_read_only_target(self, client):
        first = submit_message(client, content="one")["id"]
        submit_message(client, content="two")

        client.put(f"/api/staff/messages/{first}/read")

        read_state = {m["id"]: m["is_read"] for m in client.get("/api/staff/messages").json()}
        assert read_state[first] is True
        assert list(read_state.values()).count(True) == 1

    def test_mark_read_unknown_id(self, client):
        response = client.put("/api/staff/messages/9999/read")

        assert response.status_code == 200
        assert response.json() == {"success": True}

    def test_mark_read_malformed_id(self, client):
        response = client.put("/api/staff/messages/abc/read")

        assert response.status_code == 400
        assert "error" in response.json()

    def test_mark_read_id_out_of_range(self, client):
        """Test an id beyond the 64-bit INTEGER range is rejected before the database."""
        response = client.put("/api/staff/messages/99999999999999999999/read")

        assert response.status_code == 400
        assert "error" in response.json()


class TestTeacherLogs:
    """Test GET /api/teacher/logs."""

    def test_reduced_fields(self, client):
        submit_message(client, sender_name="山田太郎", school_year="1", school_class="A")

        entry = client.get("/api/teacher/logs").json()[0]

        assert set(entry) == LOG_FIELDS
        assert entry["sender_name"] == "山田太郎"
        assert entry["school_class"] == "1年A組"

    def test_ignores_share_flags(self, client):
        submit_message(client, sender_name="匿名希望", share_name=False, share_class=False)

        assert client.get("/api/teacher/logs").json()[0]["sender_name"] == "匿名希望"


class TestEndToEnd:
    """Theme creation through to the teacher log."""

    def test_theme_message_staff_log(self, client):
        theme = create_theme(client, "秋の読書")
        assert [t["id"] for t in client.get("/api/student/themes").json()] == [theme["id"]]

        message_id = submit_message(
            client,
            radio_name="本の虫",
            content="おすすめの本があります",
            sender_name="佐藤",
            theme_id=theme["id"],
            share_name=False,
            share_class=False,
            share_theme=False,
        )["id"]

        staff_view = client.get("/api/staff/messages").json()
        assert len(staff_view) == 1
        assert staff_view[0]["id"] == message_id
        assert staff_view[0]["theme_id"] == theme["id"]
        assert staff_view[0]["theme_title"] == "秋の読書"

        log_view = client.get("/api/teacher/logs").json()
        assert len(log_view) == 1
        assert set(log_view[0]) == LOG_FIELDS
        assert log_view[0]["id"] == message_id
        assert log_view[0]["sender_name"] == "佐藤"
        assert log_view[0]["theme_title"] == "秋の読書"


class TestMessageService:
    """Test MessageService directly against the store."""

    @pytest.fixture
    def service(self, store):
        return MessageService(store)

    def test_submit_records_ip(self, service):
        result = service.submit(
            MessageSubmitRequest(radio_name="Taro", content="hello"),
            client_ip="192.0.2.1",
        )

        entry = service.list_logs_for_teacher()[0]
        assert entry.id == result.id
        assert entry.ip_address == "192.0.2.1"

    def test_submit_without_ip(self, service):
        service.submit(MessageSubmitRequest(radio_name="Taro", content="hello"))

        assert service.list_for_staff()[0].ip_address is None

    def test_empty_content_rejected(self, service):
        with pytest.raises(ValidationError):
            service.submit(MessageSubmitRequest(radio_name="Taro", content=""))

        assert service.list_for_staff() == []

    def test_mark_read(self, service, store):
        result = service.submit(MessageSubmitRequest(radio_name="Taro", content="hello"))

        service.mark_read(result.id)
        service.mark_read(str(result.id))

        assert service.list_for_staff()[0].is_read is True
        assert store.mark_message_read(result.id + 100) is False
