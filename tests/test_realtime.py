"""
Websocket tests: authentication, fan-out of server events and client frames.
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from tests.helpers import API, BOB, CAROL


def test_bad_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"{API}/ws?token=not-a-token"):
            pass
    assert excinfo.value.code == 4401


def test_missing_token_is_rejected(client):
    with pytest.raises(WebSocketDisconnect) as excinfo:
        with client.websocket_connect(f"{API}/ws"):
            pass
    assert excinfo.value.code == 4401


def test_members_receive_new_messages(alice, bob):
    group = alice.create_group("crew", [BOB])
    with bob.websocket() as ws:
        sent = alice.send(group["id"], "hello over the wire")["message"]
        event = ws.receive_json()
    assert event["type"] == "message.created"
    assert event["conversation_id"] == group["id"]
    assert event["data"]["id"] == sent["id"]
    assert event["data"]["body"] == "hello over the wire"
    assert "timestamp" in event


def test_reaction_and_delete_events(alice, bob):
    group = alice.create_group("crew", [BOB])
    message = alice.send(group["id"], "react to me")["message"]
    with alice.websocket() as ws:
        bob.post(f"/messages/{message['id']}/reactions", json={"emoji": "🔥"})
        added = ws.receive_json()
        alice.delete(f"/messages/{message['id']}")
        deleted = ws.receive_json()
    assert added["type"] == "reaction.added"
    assert added["data"]["emoji"] == "🔥"
    assert added["data"]["user_id"] == BOB
    assert deleted["type"] == "message.deleted"
    assert deleted["data"]["id"] == message["id"]


def test_typing_is_relayed_to_others(alice, bob):
    group = alice.create_group("crew", [BOB])
    with alice.websocket() as alice_ws, bob.websocket() as bob_ws:
        bob_ws.send_json({"type": "typing.started", "conversation_id": group["id"]})
        event = alice_ws.receive_json()
        assert event["type"] == "typing.started"
        assert event["data"] == {"user_id": BOB}

        # bob never hears his own typing; the next thing he sees is the message
        alice.send(group["id"], "after typing")
        assert bob_ws.receive_json()["type"] == "message.created"


def test_call_signalling_reaches_only_the_target(alice, bob):
    group = alice.create_group("crew", [BOB])
    with alice.websocket() as alice_ws, bob.websocket() as bob_ws:
        bob_ws.send_json({
            "type": "call.offer",
            "conversation_id": group["id"],
            "data": {"target_user_id": 1, "sdp": "v=0"},
        })
        event = alice_ws.receive_json()
    assert event["type"] == "call.offer"
    assert event["data"]["sdp"] == "v=0"
    assert event["data"]["from_user_id"] == BOB


def test_read_frame_updates_watermark(alice, bob):
    group = alice.create_group("crew", [BOB])
    message = alice.send(group["id"], "read me")["message"]
    with alice.websocket() as alice_ws, bob.websocket() as bob_ws:
        bob_ws.send_json({
            "type": "read.updated",
            "conversation_id": group["id"],
            "data": {"last_read_message_id": message["id"]},
        })
        event = alice_ws.receive_json()
    assert event["type"] == "read.updated"
    assert event["data"]["user_id"] == BOB
    assert event["data"]["last_read_message_id"] == message["id"]


def test_frames_for_foreign_conversations_are_ignored(alice, carol):
    group = alice.create_group("crew", [])
    with alice.websocket() as alice_ws, carol.websocket() as carol_ws:
        carol_ws.send_text("not json at all")
        carol_ws.send_json({"type": "typing.started", "conversation_id": group["id"]})
        alice.send(group["id"], "still quiet")
        assert alice_ws.receive_json()["type"] == "message.created"


def test_presence_follows_the_socket(alice, bob):
    assert alice.get(f"/presence/{BOB}").json() == {"user_id": BOB, "online": False}
    with bob.websocket():
        assert alice.get(f"/presence/{BOB}").json()["online"] is True
    assert alice.get(f"/presence/{CAROL}").json()["online"] is False
