"""
Integration tests for the lobby REST API and live channel.

Tests the lobby lifecycle via HTTP:
- POST /lobbies - Create lobby
- GET /lobbies, /lobbies/hosted, /lobbies/joined - List lobbies
- GET /lobbies/{id}, /lobbies/{id}/stats - Snapshot and standings
- POST /lobbies/{id}/join|leave|start|end - Membership and status
- DELETE /lobbies/{id} - Delete lobby
- POST /lobbies/{id}/invites, /invites/{code}[/join] - Invite codes
- POST /lobbies/{id}/completions - Race completions
- WS /lobbies/{id}/ws - Live events
"""

from contextlib import ExitStack
from datetime import timedelta

import pytest
from fastapi import WebSocketDisconnect

from quizlobby.models.invite import Invite


def create_lobby(client, quiz_id, host_id, limit=4, **extra):
    response = client.post(
        "/lobbies",
        params={"user_id": host_id},
        json={"quiz_id": quiz_id, "participant_limit": limit, **extra},
    )
    assert response.status_code == 201
    return response.json()


def act(client, lobby_id, action, user_id, **kwargs):
    return client.post(f"/lobbies/{lobby_id}/{action}", params={"user_id": user_id}, **kwargs)


class TestCreateLobby:
    """Test POST /lobbies endpoint."""

    def test_create_lobby(self, client, quiz, users):
        """Test the host becomes the first participant."""
        data = create_lobby(client, quiz.id, users[0], limit=3)

        assert data["status"] == "waiting"
        assert data["participant_limit"] == 3
        assert data["quiz"] == {"id": quiz.id, "title": "World Capitals"}
        assert data["host"] == {"id": users[0], "display_name": "User 1"}
        assert data["participants"] == [{"id": users[0], "display_name": "User 1"}]
        assert data["winner"] is None

    def test_create_with_scheduled_start(self, client, quiz, users):
        data = create_lobby(client, quiz.id, users[0], scheduled_start="2030-01-01T10:00:00Z")

        assert data["start_time"].startswith("2030-01-01T10:00:00")
        assert data["status"] == "waiting"

    def test_unknown_quiz(self, client, users):
        response = client.post("/lobbies", params={"user_id": users[0]}, json={"quiz_id": 999, "participant_limit": 2})

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    @pytest.mark.parametrize("limit", [0, 51])
    def test_limit_out_of_range(self, client, quiz, users, limit):
        response = client.post(
            "/lobbies", params={"user_id": users[0]}, json={"quiz_id": quiz.id, "participant_limit": limit}
        )

        assert response.status_code == 422
        assert response.json()["detail"][0]["loc"] == ["body", "participant_limit"]
        assert client.get("/lobbies").json() == []

    def test_missing_user(self, client, quiz):
        response = client.post("/lobbies", json={"quiz_id": quiz.id, "participant_limit": 2})

        assert response.status_code == 422


class TestListAndGet:
    """Test lobby read endpoints."""

    def test_get_lobby(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = client.get(f"/lobbies/{lobby['id']}")

        assert response.status_code == 200
        assert response.json() == lobby

    def test_get_unknown_lobby(self, client):
        response = client.get("/lobbies/missing-lobby")

        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"

    def test_list_with_status_filter(self, client, quiz, users):
        waiting = create_lobby(client, quiz.id, users[0])
        started = create_lobby(client, quiz.id, users[1])
        act(client, started["id"], "start", users[1])

        all_ids = {item["id"] for item in client.get("/lobbies").json()}
        started_ids = [item["id"] for item in client.get("/lobbies", params={"status": "started"}).json()]

        assert all_ids == {waiting["id"], started["id"]}
        assert started_ids == [started["id"]]

    def test_list_invalid_status(self, client):
        response = client.get("/lobbies", params={"status": "paused"})

        assert response.status_code == 400
        assert "Invalid status" in response.json()["detail"]

    def test_hosted_and_joined(self, client, quiz, users):
        mine = create_lobby(client, quiz.id, users[0])
        theirs = create_lobby(client, quiz.id, users[1])
        act(client, theirs["id"], "join", users[0])

        hosted = client.get("/lobbies/hosted", params={"user_id": users[0]}).json()
        joined = client.get("/lobbies/joined", params={"user_id": users[0]}).json()

        assert [item["id"] for item in hosted] == [mine["id"]]
        assert [item["id"] for item in joined] == [theirs["id"]]
        assert joined[0]["participant_count"] == 2


class TestMembership:
    """Test join and leave endpoints."""

    def test_join(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = act(client, lobby["id"], "join", users[1])

        assert response.status_code == 200
        assert [p["id"] for p in response.json()["participants"]] == [users[0], users[1]]

    def test_join_twice_conflicts(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "join", users[1])

        assert response.status_code == 409
        assert response.json()["kind"] == "conflict"

    def test_join_full_lobby(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0], limit=2)
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "join", users[2])

        assert response.status_code == 409
        assert response.json()["kind"] == "capacity_exceeded"

    def test_join_started_lobby(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "start", users[0])

        response = act(client, lobby["id"], "join", users[1])

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_state"

    def test_join_unknown_lobby(self, client, users):
        assert act(client, "missing-lobby", "join", users[0]).status_code == 404

    def test_leave(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "leave", users[1])

        assert response.status_code == 200
        assert response.json()["status"] == "waiting"
        assert [p["id"] for p in response.json()["participants"]] == [users[0]]

    def test_host_leave_ends_lobby(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "leave", users[0])

        assert response.status_code == 200
        assert response.json()["status"] == "ended"

    def test_leave_without_membership(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = act(client, lobby["id"], "leave", users[1])

        assert response.status_code == 404


class TestLifecycle:
    """Test start, end and delete endpoints."""

    def test_host_starts(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = act(client, lobby["id"], "start", users[0])

        assert response.status_code == 200
        assert response.json()["status"] == "started"
        assert response.json()["start_time"] is not None

    def test_non_host_cannot_start(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "start", users[1])

        assert response.status_code == 403
        assert response.json()["kind"] == "forbidden"

    def test_start_twice(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "start", users[0])

        response = act(client, lobby["id"], "start", users[0])

        assert response.status_code == 400
        assert response.json()["kind"] == "invalid_state"

    def test_end_then_end_again(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        assert act(client, lobby["id"], "end", users[0]).json()["status"] == "ended"
        assert act(client, lobby["id"], "end", users[0]).status_code == 400

    def test_delete(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = client.delete(f"/lobbies/{lobby['id']}", params={"user_id": users[0]})

        assert response.status_code == 204
        assert client.get(f"/lobbies/{lobby['id']}").status_code == 404

    def test_non_host_cannot_delete(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        response = client.delete(f"/lobbies/{lobby['id']}", params={"user_id": users[1]})

        assert response.status_code == 403
        assert client.get(f"/lobbies/{lobby['id']}").status_code == 200


class TestInviteEndpoints:
    """Test invite issue, preview and join."""

    def test_issue_and_join(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        issued = act(client, lobby["id"], "invites", users[0])
        assert issued.status_code == 201
        code = issued.json()["code"]

        preview = client.get(f"/invites/{code}")
        assert preview.status_code == 200
        assert preview.json()["id"] == lobby["id"]

        joined = client.post(f"/invites/{code}/join", params={"user_id": users[1]})
        assert joined.status_code == 200
        assert [p["id"] for p in joined.json()["participants"]] == [users[0], users[1]]

    def test_non_host_cannot_issue(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        response = act(client, lobby["id"], "invites", users[1])

        assert response.status_code == 403

    def test_unknown_code(self, client):
        response = client.get("/invites/0123456789abcdef")

        assert response.status_code == 404

    def test_expired_code(self, client, db, quiz, users):
        """Test an expired code answers 410."""
        lobby = create_lobby(client, quiz.id, users[0])
        code = act(client, lobby["id"], "invites", users[0]).json()["code"]

        invite = db.query(Invite).filter(Invite.code == code).one()
        invite.expires_at = invite.created_at - timedelta(seconds=1)
        db.commit()

        response = client.post(f"/invites/{code}/join", params={"user_id": users[1]})

        assert response.status_code == 410
        assert response.json()["kind"] == "expired"


class TestCompletions:
    """Test POST /lobbies/{id}/completions and stats."""

    def _started(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])
        act(client, lobby["id"], "start", users[0])
        return lobby

    def test_first_completion_wins(self, client, quiz, users, make_attempt):
        lobby = self._started(client, quiz, users)
        first = make_attempt(users[1], quiz.id, lobby_id=lobby["id"], score=7)
        second = make_attempt(users[0], quiz.id, lobby_id=lobby["id"], score=9)

        won = act(client, lobby["id"], "completions", users[1], json={"attempt_id": first.id})
        lost = act(client, lobby["id"], "completions", users[0], json={"attempt_id": second.id})

        assert won.status_code == 200
        assert won.json()["won"] is True
        assert won.json()["winner"]["user_id"] == users[1]
        assert lost.status_code == 200
        assert lost.json()["won"] is False
        assert lost.json()["winner"]["attempt_id"] == first.id

        snapshot = client.get(f"/lobbies/{lobby['id']}").json()
        assert snapshot["winner"]["user_id"] == users[1]

    def test_completion_before_start(self, client, quiz, users, make_attempt):
        lobby = create_lobby(client, quiz.id, users[0])
        attempt = make_attempt(users[0], quiz.id, lobby_id=lobby["id"])

        response = act(client, lobby["id"], "completions", users[0], json={"attempt_id": attempt.id})

        assert response.status_code == 400

    def test_completion_by_outsider(self, client, quiz, users, make_attempt):
        lobby = self._started(client, quiz, users)
        attempt = make_attempt(users[3], quiz.id, lobby_id=lobby["id"])

        response = act(client, lobby["id"], "completions", users[3], json={"attempt_id": attempt.id})

        assert response.status_code == 403

    def test_stats(self, client, quiz, users, make_attempt):
        lobby = self._started(client, quiz, users)
        make_attempt(users[0], quiz.id, lobby_id=lobby["id"], score=4)
        make_attempt(users[1], quiz.id, lobby_id=lobby["id"], score=6)

        response = client.get(f"/lobbies/{lobby['id']}/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["lobby"]["id"] == lobby["id"]
        assert [entry["user"]["id"] for entry in data["attempts"]] == [users[1], users[0]]


class TestLiveChannel:
    """Test WS /lobbies/{id}/ws."""

    def test_initial_snapshot(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        with client.websocket_connect(f"/lobbies/{lobby['id']}/ws?user_id={users[0]}") as ws:
            message = ws.receive_json()

        assert message["type"] == "lobby_updated"
        assert message["data"]["lobby"]["id"] == lobby["id"]

    def test_unknown_lobby_closes(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/lobbies/missing-lobby/ws") as ws:
                ws.receive_json()

        assert exc_info.value.code == 4404

    def test_ping_and_sync(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])

        with client.websocket_connect(f"/lobbies/{lobby['id']}/ws") as ws:
            ws.receive_json()

            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}

            ws.send_json({"type": "sync"})
            assert ws.receive_json()["type"] == "lobby_updated"

    def test_idle_subscribers_hold_no_connections(self, client, quiz, users):
        """Test more open sockets than the pool holds do not starve REST requests."""
        lobby = create_lobby(client, quiz.id, users[0])
        subscribers = 25  # more than the default pool of 5 + 10 overflow

        with ExitStack() as stack:
            for _ in range(subscribers):
                ws = stack.enter_context(client.websocket_connect(f"/lobbies/{lobby['id']}/ws"))
                ws.receive_json()

            assert client.app.state.broadcaster.subscriber_count(lobby["id"]) == subscribers

            response = client.get(f"/lobbies/{lobby['id']}")
            assert response.status_code == 200

            joined = act(client, lobby["id"], "join", users[1])
            assert joined.status_code == 200

            ws.send_json({"type": "sync"})
            assert len(ws.receive_json()["data"]["lobby"]["participants"]) == 2

    def test_race_events(self, client, quiz, users, make_attempt):
        """Test subscribers see join, start and winner events in order."""
        lobby = create_lobby(client, quiz.id, users[0])

        with client.websocket_connect(f"/lobbies/{lobby['id']}/ws?user_id={users[0]}") as ws:
            ws.receive_json()

            act(client, lobby["id"], "join", users[1])
            joined = ws.receive_json()
            assert joined["type"] == "lobby_updated"
            assert len(joined["data"]["lobby"]["participants"]) == 2

            act(client, lobby["id"], "start", users[0])
            assert ws.receive_json()["type"] == "lobby_started"
            assert ws.receive_json()["data"]["lobby"]["status"] == "started"

            attempt = make_attempt(users[1], quiz.id, lobby_id=lobby["id"])
            act(client, lobby["id"], "completions", users[1], json={"attempt_id": attempt.id})
            winner = ws.receive_json()
            assert winner["type"] == "lobby_winner_declared"
            assert winner["data"]["user_id"] == users[1]
            assert winner["data"]["attempt_id"] == attempt.id

            act(client, lobby["id"], "end", users[0])
            ended = ws.receive_json()
            assert ended == {"type": "lobby_ended", "data": {"lobby_id": lobby["id"], "reason": "host_ended"}}

    def test_host_leave_event(self, client, quiz, users):
        lobby = create_lobby(client, quiz.id, users[0])
        act(client, lobby["id"], "join", users[1])

        with client.websocket_connect(f"/lobbies/{lobby['id']}/ws?user_id={users[1]}") as ws:
            ws.receive_json()

            act(client, lobby["id"], "leave", users[0])

            assert ws.receive_json()["data"]["lobby"]["status"] == "ended"
            assert ws.receive_json()["data"]["reason"] == "host_left"
