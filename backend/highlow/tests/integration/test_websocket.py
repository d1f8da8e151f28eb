"""Integration tests for WebSocket and HTTP endpoints.

These tests verify the web/transport layer (HTTP endpoints, WebSocket protocol,
MessagePack encoding) using the test client. Game rules are covered by the
unit tests; here the point is that intents travel end to end.
"""

import time
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from highlow.logic.enums import GameStatus
from highlow.messaging.types import SessionErrorCode, SessionMessageType
from highlow.server import websocket as ws_module
from highlow.server.app import create_app
from highlow.server.settings import GameServerSettings
from highlow.tests.helpers.websocket import create_game, join_game, recv_until, recv_ws, send_ws


def _wait_for(condition, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


class TestWebSocketIntegration:
    @pytest.fixture
    def client(self):
        app = create_app(settings=GameServerSettings())
        with TestClient(app) as client:
            yield client

    def test_create_game(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "create_game", "username": "Alice"})

            created = recv_ws(ws)
            state = recv_ws(ws)

        assert created["type"] == SessionMessageType.GAME_CREATED
        assert len(created["room_code"]) == 3
        assert state["type"] == SessionMessageType.GAME_STATE
        assert state["room_code"] == created["room_code"]
        assert state["status"] == GameStatus.WAITING

    def test_two_players_play_a_turn(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            room_code = create_game(alice, "Alice")["room_code"]
            join_game(bob, room_code, "Bob")
            assert recv_ws(alice)["type"] == SessionMessageType.PLAYER_JOINED
            assert len(recv_ws(alice)["players"]) == 2

            send_ws(alice, {"type": "start_game", "room_code": room_code})
            for ws in (alice, bob):
                assert recv_ws(ws)["type"] == SessionMessageType.GAME_STARTED
                state = recv_ws(ws)
                assert state["status"] == GameStatus.PLAYING
                assert len(state["piles"]) == 9

            send_ws(alice, {"type": "select_pile", "room_code": room_code, "pile_index": 0})
            for ws in (alice, bob):
                assert recv_ws(ws)["type"] == SessionMessageType.PILE_SELECTED
                assert recv_ws(ws)["current_pile_index"] == 0

            send_ws(alice, {"type": "make_prediction", "room_code": room_code, "prediction": "higher"})
            result = recv_ws(bob)
            state = recv_ws(bob)

        assert result["type"] == SessionMessageType.PREDICTION_RESULT
        assert result["remaining_cards"] == 42
        assert state["current_player_index"] == 1
        assert len(state["piles"][0]["cards"]) == 2

    def test_out_of_turn_error_goes_to_caller(self, client):
        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            room_code = create_game(alice, "Alice")["room_code"]
            join_game(bob, room_code, "Bob")
            recv_until(alice, SessionMessageType.GAME_STATE)

            send_ws(bob, {"type": "start_game", "room_code": room_code})
            error = recv_ws(bob)

        assert error["type"] == SessionMessageType.ERROR
        assert error["code"] == SessionErrorCode.NOT_HOST

    def test_disconnect_and_reconnect(self):
        app = create_app(settings=GameServerSettings(disconnect_grace_seconds=5))
        manager = app.state.session_manager
        with TestClient(app) as client, client.websocket_connect("/ws") as alice:
            room_code = create_game(alice, "Alice")["room_code"]
            with client.websocket_connect("/ws") as bob:
                token = join_game(bob, room_code, "Bob")["session_token"]
                recv_until(alice, SessionMessageType.GAME_STATE)

            # closing a test socket cancels its endpoint task, which can cut the
            # disconnect broadcast short; read the room instead of Alice's frames
            _wait_for(lambda: manager.get_room(room_code).players[1].disconnected)

            with client.websocket_connect("/ws") as bob_again:
                send_ws(bob_again, {"type": "reconnect", "username": "Bob", "session_token": token})
                joined = recv_ws(bob_again)
                state = recv_ws(bob_again)
                reconnected = recv_until(alice, SessionMessageType.PLAYER_RECONNECTED)[-1]

            assert joined["type"] == SessionMessageType.GAME_JOINED
            assert joined["reconnected"] is True
            assert state["players"][1]["disconnected"] is False
            assert reconnected["username"] == "Bob"
            assert [p.username for p in manager.get_room(room_code).players] == ["Alice", "Bob"]

    def test_invalid_message_returns_error(self, client):
        with client.websocket_connect("/ws") as ws:
            send_ws(ws, {"type": "join_game", "room_code": "??", "username": "Bob"})
            response = recv_ws(ws)

        assert response["type"] == SessionMessageType.ERROR
        assert response["code"] == SessionErrorCode.INVALID_MESSAGE

    def test_repeated_decode_errors_disconnect(self, client):
        """Sending too many consecutive malformed frames disconnects the client."""
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            for _ in range(3):
                ws.send_bytes(b"\xff\xff\xff")
                recv_ws(ws)  # drain INVALID_MESSAGE error
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()

        assert exc_info.value.code == 4004

    def test_decode_error_counter_resets_on_valid_message(self, client):
        with patch.object(ws_module, "_MAX_DECODE_ERRORS", 3), client.websocket_connect("/ws") as ws:
            for _ in range(2):
                ws.send_bytes(b"\xff\xff\xff")
                assert recv_ws(ws)["code"] == SessionErrorCode.INVALID_MESSAGE

            create_game(ws)

            for _ in range(2):
                ws.send_bytes(b"\xff\xff\xff")
                assert recv_ws(ws)["code"] == SessionErrorCode.INVALID_MESSAGE

            send_ws(ws, {"type": "end_game", "room_code": "ZZZ"})
            assert recv_ws(ws)["code"] == SessionErrorCode.NOT_IN_ROOM


class TestHttpEndpoints:
    @pytest.fixture
    def client(self):
        app = create_app(settings=GameServerSettings(max_rooms=7))
        with TestClient(app) as client:
            yield client

    def test_health_returns_ok(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_status_counts_rooms(self, client):
        with client.websocket_connect("/ws") as ws:
            create_game(ws)
            data = client.get("/status").json()

        assert data["status"] == "ok"
        assert data["rooms"] == 1
        assert data["sessions"] == 1
        assert data["connections"] == 1
        assert data["max_rooms"] == 7
