"""
End-to-end tests for the /ws/chat endpoint through the ASGI test client.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from shared.config.settings import settings
from ws_gateway.components.core.constants import WSCloseCode


def receive_until(ws, event: str, limit: int = 10) -> dict:
    """Read frames until one with the given event name arrives."""
    for _ in range(limit):
        message = ws.receive_json()
        if message["event"] == event:
            return message
    raise AssertionError(f"no {event} frame received")


class TestChatWebSocket:
    """Connection lifecycle and frame handling."""

    def test_first_frame_is_ping(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            first = ws.receive_json()

        assert first["event"] == "ping"
        assert "timestamp" in first["data"]

    def test_join_sends_notice_history_and_room_data(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_json({"event": "join", "data": {"roomId": "general", "username": "alice"}})

            notice = ws.receive_json()
            history = ws.receive_json()
            room_data = ws.receive_json()

        assert notice["event"] == "message"
        assert notice["data"]["text"] == "alice has joined the chat."
        assert history["event"] == "messageHistory"
        assert history["data"][0]["text"] == "Welcome to the General room!"
        assert room_data["event"] == "roomData"
        assert [u["username"] for u in room_data["data"]["users"]] == ["alice"]

    def test_malformed_frame_keeps_connection_open(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_text("definitely not json")
            error = ws.receive_json()

            ws.send_json({"event": "getRooms"})
            rooms = ws.receive_json()

        assert error["event"] == "error"
        assert error["data"]["message"] == "Invalid message format."
        assert rooms["event"] == "availableRooms"
        assert [r["id"] for r in rooms["data"]] == ["general", "tech", "random"]

    def test_two_clients_share_room_messages(self, client):
        with client.websocket_connect("/ws/chat") as alice, client.websocket_connect("/ws/chat") as bob:
            alice.receive_json()
            bob.receive_json()
            alice.send_json({"event": "join", "data": {"roomId": "general", "username": "alice"}})
            receive_until(alice, "roomData")
            bob.send_json({"event": "join", "data": {"roomId": "general", "username": "bob"}})
            receive_until(bob, "roomData")
            receive_until(alice, "roomData")

            alice.send_json({"event": "sendMessage", "data": {"message": "hello bob"}})
            received = receive_until(bob, "message")

        assert received["data"]["user"] == "alice"
        assert received["data"]["text"] == "hello bob"
        assert received["data"]["isSystem"] is False

    def test_oversized_frame_closes_with_1009(self, client):
        with client.websocket_connect("/ws/chat") as ws:
            ws.receive_json()
            ws.send_text("x" * (settings.ws_max_message_size + 1))

            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == WSCloseCode.MESSAGE_TOO_BIG

    def test_disallowed_origin_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/chat", headers={"origin": "http://evil.example"}):
                pass

        assert exc_info.value.code == WSCloseCode.FORBIDDEN

    def test_connection_ceiling_closes_with_1013(self, client, monkeypatch):
        monkeypatch.setattr(settings, "ws_max_total_connections", 1)

        with client.websocket_connect("/ws/chat") as first:
            first.receive_json()
            with client.websocket_connect("/ws/chat") as second:
                with pytest.raises(WebSocketDisconnect) as exc_info:
                    second.receive_json()

        assert exc_info.value.code == WSCloseCode.SERVER_OVERLOADED
