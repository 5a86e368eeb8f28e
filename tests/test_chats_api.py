"""HTTP tests for the chat routes."""

from datetime import datetime

from conftest import auth_headers, run
from petnest import config
from petnest.utils.auth import create_room_token


def chat_url(listing_type="adoption", listing_id="p1", user_id="buyer", owner_id="owner"):
    return f"/api/chats/{listing_type}/{listing_id}/{user_id}/{owner_id}"


def test_example_conversation(client, make_user):
    user_a = make_user("Alice")
    user_b = make_user("Bob")

    first = client.post(
        chat_url(user_id=user_a, owner_id=user_b),
        json={"content": "Is p1 still available?"},
        headers=auth_headers(user_a),
    )
    assert first.status_code == 201
    assert len(first.json()["chat"]["messages"]) == 1

    second = client.post(
        chat_url(user_id=user_a, owner_id=user_b),
        json={"content": "Yes!"},
        headers=auth_headers(user_b),
    )
    assert second.status_code == 201
    body = second.json()
    assert body["message"]["from"] == user_b
    assert body["message"]["type"] == "text"
    assert len(body["chat"]["messages"]) == 2

    history = client.get(chat_url(user_id=user_a, owner_id=user_b), params={"page": 1, "limit": 30})
    assert history.status_code == 200
    data = history.json()
    assert data["total"] == 2
    assert data["page"] == 1
    assert data["limit"] == 30
    assert [m["content"] for m in data["messages"]] == ["Is p1 still available?", "Yes!"]
    assert [m["sender_name"] for m in data["messages"]] == ["Alice", "Bob"]


def test_history_of_unstarted_chat_is_empty(client):
    response = client.get(chat_url(listing_id="never-messaged"), params={"page": 4, "limit": 7})

    assert response.status_code == 200
    assert response.json() == {"messages": [], "total": 0, "page": 4, "limit": 7}


def test_history_rejects_invalid_listing_type(client):
    assert client.get(chat_url(listing_type="invalid")).status_code == 400


def test_history_rejects_bad_paging(client):
    assert client.get(chat_url(), params={"page": 0}).status_code == 400
    assert client.get(chat_url(), params={"limit": 0}).status_code == 400


def test_send_with_invalid_listing_type_creates_no_chat(client, make_user, mock_db):
    user = make_user()

    response = client.post(chat_url(listing_type="invalid"), json={"content": "hi"}, headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid listing type"
    assert run(mock_db.chats.count_documents({})) == 0


def test_send_without_content_is_rejected(client, make_user, mock_db):
    user = make_user()

    assert client.post(chat_url(), json={}, headers=auth_headers(user)).status_code == 400
    assert client.post(chat_url(), json={"content": ""}, headers=auth_headers(user)).status_code == 400
    assert run(mock_db.chats.count_documents({})) == 0


def test_send_with_non_text_content_is_rejected(client, make_user, mock_db):
    user = make_user()
    headers = auth_headers(user)

    assert client.post(chat_url(), json={"content": 123}, headers=headers).status_code == 400
    assert client.post(chat_url(), json={"content": ["hi"]}, headers=headers).status_code == 400
    assert client.post(chat_url(), json={"content": "hi", "type": 5}, headers=headers).status_code == 400
    assert run(mock_db.chats.count_documents({})) == 0


def test_send_without_body_is_rejected(client, make_user, mock_db):
    user = make_user()

    response = client.post(chat_url(), headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["detail"] == "Message content required"
    assert run(mock_db.chats.count_documents({})) == 0


def test_sent_timestamp_matches_stored_history(client, make_user):
    user = make_user()

    sent = client.post(chat_url(user_id=user), json={"content": "hello"}, headers=auth_headers(user)).json()
    history = client.get(chat_url(user_id=user)).json()

    timestamp = sent["message"]["timestamp"]
    assert timestamp == history["messages"][0]["timestamp"]
    assert timestamp == sent["chat"]["messages"][0]["timestamp"]
    assert datetime.fromisoformat(timestamp.replace("Z", "+00:00")).utcoffset() is not None


def test_send_requires_authentication(client):
    assert client.post(chat_url(), json={"content": "hi"}).status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.post(chat_url(), json={"content": "hi"}, headers=bad).status_code == 401


def test_room_token_cannot_authenticate_http_calls(client, make_user):
    user = make_user()
    headers = {"Authorization": f"Bearer {create_room_token(user, 'adoption_p1')}"}

    assert client.post(chat_url(), json={"content": "hi"}, headers=headers).status_code == 401


def test_suspended_user_cannot_send(client, make_user):
    user = make_user("Mallory", is_suspended=True)

    response = client.post(chat_url(), json={"content": "hi"}, headers=auth_headers(user))

    assert response.status_code == 403


def test_rate_limited_send_returns_429(client, make_user, monkeypatch):
    monkeypatch.setattr(config, "CHAT_RATE_LIMIT_MESSAGES", 1)
    user = make_user()

    assert client.post(chat_url(), json={"content": "one"}, headers=auth_headers(user)).status_code == 201
    assert client.post(chat_url(), json={"content": "two"}, headers=auth_headers(user)).status_code == 429


def test_room_token_endpoint(client, make_user):
    buyer = make_user("Alice")
    stranger = make_user("Eve")
    client.post(chat_url(user_id=buyer), json={"content": "hi"}, headers=auth_headers(buyer))

    granted = client.post("/api/chats/adoption/p1/room-token", headers=auth_headers(buyer))
    assert granted.status_code == 200
    assert granted.json()["room"] == "adoption_p1"
    assert granted.json()["expires_in"] == config.ROOM_TOKEN_EXPIRE_SECONDS

    denied = client.post("/api/chats/adoption/p1/room-token", headers=auth_headers(stranger))
    assert denied.status_code == 403


def test_my_chats(client, make_user):
    buyer = make_user("Alice")
    owner = make_user("Bob")
    client.post(chat_url(listing_id="p1", user_id=buyer, owner_id=owner), json={"content": "hi"}, headers=auth_headers(buyer))
    client.post(chat_url(listing_id="p2", user_id=buyer, owner_id=owner), json={"content": "also"}, headers=auth_headers(buyer))

    response = client.get("/api/chats/mine", headers=auth_headers(owner))

    assert response.status_code == 200
    chats = response.json()
    assert {c["listing_id"] for c in chats} == {"p1", "p2"}
    p2 = next(c for c in chats if c["listing_id"] == "p2")
    assert p2["message_count"] == 1
    assert p2["last_message"]["content"] == "also"
    assert p2["last_message"]["sender_name"] == "Alice"


def test_sent_message_is_pushed_to_joined_connections(client, make_user):
    buyer = make_user("Alice")
    token = client.post("/api/chats/adoption/p1/room-token", headers=auth_headers(buyer)).json()["token"]

    with client.websocket_connect("/ws/chat") as ws:
        ws.send_json({"event": "joinRoom", "data": {"listingType": "adoption", "listingId": "p1", "token": token}})
        # Round-trip through the room so the join is known to be processed
        ws.send_json({"event": "chatMessage", "data": {"listingType": "adoption", "listingId": "p1", "message": "sync"}})
        assert ws.receive_json() == {"event": "chatMessage", "data": "sync"}

        response = client.post(chat_url(user_id=buyer), json={"content": "persisted"}, headers=auth_headers(buyer))
        assert response.status_code == 201

        frame = ws.receive_json()
        assert frame["event"] == "chatMessage"
        assert frame["data"]["content"] == "persisted"
        assert frame["data"]["from"] == buyer


def test_health_reports_relay_usage(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["rooms"] == 0
    assert body["connections"] == 0
    assert body["status"] in ("healthy", "unhealthy")
