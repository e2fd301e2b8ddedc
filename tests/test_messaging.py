from careportal.core.database import SessionLocal
from careportal.models.session import PortalSession
from tests.conftest import DOCTOR, PATIENT, sign_in

def message(id, sender_id=7, receiver_id=3, content="Hello doctor", is_read=False):
    return {"id": id, "sender_id": sender_id, "receiver_id": receiver_id, "content": content, "is_read": is_read}

def session_id():
    db = SessionLocal()
    try:
        return db.query(PortalSession).one().id
    finally:
        db.close()

class TestContacts:

    def test_contacts(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/contacts", [
            {"id": 3, "name": "Dr. Grey", "user_type": "doctor", "has_unread": True},
        ])

        response = client.get("/api/v1/messaging/contacts", headers=headers)
        assert response.status_code == 200
        assert response.json()[0]["has_unread"] is True

    def test_contacts_failure(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/contacts", {"error": "boom"}, status=500)

        response = client.get("/api/v1/messaging/contacts", headers=headers)
        assert response.status_code == 502
        assert response.json()["detail"] == "Failed to load contacts"

class TestSendMessage:

    def test_empty_message_is_rejected(self, client, backend):
        headers = sign_in(client, backend, PATIENT)

        response = client.post(
            "/api/v1/messaging/messages",
            headers=headers,
            json={"receiverId": 3, "content": "   "}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Message cannot be empty"
        assert backend.requests_to("POST", "/messaging/messages") == []

    def test_send_then_refetch(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("POST", "/messaging/messages", {"id": 2})
        backend.add("GET", "/messaging/conversations/3", [message(1), message(2, content="Any update?")])

        response = client.post(
            "/api/v1/messaging/messages",
            headers=headers,
            json={"receiverId": 3, "content": "Any update?"}
        )
        assert response.status_code == 200
        assert [m["id"] for m in response.json()] == [1, 2]
        assert backend.body_of(backend.requests_to("POST", "/messaging/messages")[0]) == {
            "receiverId": 3,
            "content": "Any update?",
        }

    def test_send_error_is_verbatim(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("POST", "/messaging/messages", {"error": "Receiver not found"}, status=404)

        response = client.post(
            "/api/v1/messaging/messages",
            headers=headers,
            json={"receiverId": 99, "content": "Hi"}
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "Receiver not found"

class TestConversations:

    def test_open_conversation(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/conversations/3", [message(1)])

        response = client.get("/api/v1/messaging/conversations/3", headers=headers)
        assert response.status_code == 200

        data = response.json()
        assert data["contact_id"] == 3
        assert [m["id"] for m in data["messages"]] == [1]
        assert data["error"] is None
        assert data["refreshed_at"] is not None

    def test_switching_contact_stops_previous_loop(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/conversations/3", [message(1)])
        backend.add("GET", "/messaging/conversations/4", [message(2, receiver_id=4)])

        client.get("/api/v1/messaging/conversations/3", headers=headers)
        registry = client.app.state.pollers
        first = registry.get(session_id(), "conversation:3")

        client.get("/api/v1/messaging/conversations/4", headers=headers)

        assert first.stopped
        assert registry.get(session_id(), "conversation:3") is None
        assert registry.get(session_id(), "conversation:4").running

    def test_close_conversation(self, client, backend):
        headers = sign_in(client, backend, DOCTOR)
        backend.add("GET", "/messaging/conversations/7", [])

        client.get("/api/v1/messaging/conversations/7", headers=headers)
        response = client.delete("/api/v1/messaging/conversations/current", headers=headers)
        assert response.status_code == 200
        assert client.app.state.pollers.get(session_id(), "conversation:7") is None

    def test_conversation_failure(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/conversations/3", {"error": "boom"}, status=500)

        data = client.get("/api/v1/messaging/conversations/3", headers=headers).json()
        assert data["messages"] == []
        assert data["error"] == "Failed to load messages"

    def test_sent_message_updates_open_conversation(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add_sequence("GET", "/messaging/conversations/3", [
            (200, [message(1)]),
            (200, [message(1), message(2, content="Thanks")]),
        ])
        backend.add("POST", "/messaging/messages", {"id": 2})

        client.get("/api/v1/messaging/conversations/3", headers=headers)
        client.post("/api/v1/messaging/messages", headers=headers, json={"receiverId": 3, "content": "Thanks"})

        data = client.get("/api/v1/messaging/conversations/3", headers=headers).json()
        assert [m["id"] for m in data["messages"]] == [1, 2]
        assert len(backend.requests_to("GET", "/messaging/conversations/3")) == 2

class TestUnread:

    def test_unread_count(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("GET", "/messaging/messages/unread/count", {"count": 4})

        response = client.get("/api/v1/messaging/unread-count", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"count": 4}

    def test_mark_as_read(self, client, backend):
        headers = sign_in(client, backend, PATIENT)
        backend.add("PUT", "/messaging/messages/5/read", {"message": "ok"})

        response = client.put("/api/v1/messaging/messages/5/read", headers=headers)
        assert response.status_code == 200
        assert len(backend.requests_to("PUT", "/messaging/messages/5/read")) == 1
