from datetime import datetime, timezone

from messaging.client.state import LocalState
from messaging.schemas.events import TransportEvent
from messaging.schemas.messaging import ConversationListItem, Message, MessagePage

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def message(message_id, conversation_id=10, sender_id=2, body="hi", **extra):
    return {
        "id": message_id,
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "body": body,
        "created_at": NOW.isoformat(),
        **extra,
    }


def conversation_item(conversation_id=10, unread=0):
    return ConversationListItem.model_validate({
        "conversation": {"id": conversation_id, "type": "group", "name": "crew", "created_by": 1},
        "role": "member",
        "unread_count": unread,
    })


def event(event_type, data, conversation_id=10):
    return TransportEvent.build(event_type, conversation_id, data)


def test_page_merge_and_timeline_order():
    state = LocalState(user_id=1)
    state.merge_page(10, MessagePage.model_validate({"messages": [message(3), message(2)], "next_cursor": 2}))
    state.merge_page(10, MessagePage.model_validate({"messages": [message(1)]}))
    assert [m.id for m in state.timeline(10)] == [1, 2, 3]
    assert state.find_message(2).body == "hi"
    assert state.find_message(99) is None


def test_message_created_bumps_unread_for_others_only():
    state = LocalState(user_id=1)
    state.load_conversations([conversation_item()])

    assert state.apply_event(event("message.created", message(5, sender_id=2)))
    assert state.apply_event(event("message.created", message(6, sender_id=1)))

    item = state.conversations[10]
    assert item.unread_count == 1
    assert item.last_message.id == 6
    assert [m.id for m in state.timeline(10)] == [5, 6]


def test_duplicate_events_are_harmless():
    state = LocalState(user_id=1)
    state.upsert_message(Message.model_validate(message(5)))
    reaction = {"id": 1, "message_id": 5, "user_id": 2, "emoji": "👍"}
    state.apply_event(event("reaction.added", reaction))
    state.apply_event(event("reaction.added", reaction))
    assert len(state.find_message(5).reactions) == 1

    state.apply_event(event("reaction.removed", {"message_id": 5, "user_id": 2, "emoji": "👍"}))
    state.apply_event(event("reaction.removed", {"message_id": 5, "user_id": 2, "emoji": "👍"}))
    assert state.find_message(5).reactions == []


def test_update_and_delete():
    state = LocalState(user_id=1)
    state.upsert_message(Message.model_validate(message(5, attachments=[{"id": 1, "message_id": 5, "kind": "file"}])))

    state.apply_event(event("message.updated", message(5, body="edited", edited_at=NOW.isoformat())))
    assert state.find_message(5).body == "edited"

    state.apply_event(event("message.deleted", {"id": 5, "deleted_at": NOW.isoformat()}))
    tombstone = state.find_message(5)
    assert tombstone.is_tombstone
    assert tombstone.deleted_at == NOW
    assert tombstone.body == ""
    assert tombstone.attachments == []


def test_delete_drops_suggestion_text():
    state = LocalState(user_id=1)
    task = {"id": 7, "message_id": 5, "type": "create_task", "payload": {"title": "fire the vendor"}, "status": "pending"}
    state.upsert_message(Message.model_validate(message(5, body="fire the vendor", suggestions=[task])))
    state.apply_event(event("message.deleted", {"id": 5, "deleted_at": NOW.isoformat()}))
    assert state.find_message(5).suggestions == []


def test_suggestion_status_is_replaced():
    state = LocalState(user_id=1)
    pending = {"id": 7, "message_id": 5, "type": "save_search", "payload": {"query": "q"}, "status": "pending"}
    state.upsert_message(Message.model_validate(message(5, suggestions=[pending])))

    accepted = {**pending, "status": "accepted"}
    state.apply_event(event("suggestion.accepted", {"suggestion": accepted, "user_id": 2}))
    suggestions = state.find_message(5).suggestions
    assert [(s.id, s.status) for s in suggestions] == [(7, "accepted")]
    assert suggestions[0].payload.query == "q"


def test_read_watermark_is_monotonic():
    state = LocalState(user_id=1)
    state.load_conversations([conversation_item(unread=4)])
    state.apply_event(event("read.updated", {"user_id": 2, "last_read_message_id": 9}))
    state.apply_event(event("read.updated", {"user_id": 2, "last_read_message_id": 4}))
    assert state.read_watermarks[(10, 2)] == 9

    state.apply_event(event("read.updated", {"user_id": 1, "last_read_message_id": 9}))
    assert state.conversations[10].unread_count == 0


def test_typing_and_membership_events():
    state = LocalState(user_id=1)
    state.load_conversations([conversation_item()])
    state.apply_event(event("typing.started", {"user_id": 2}))
    assert state.typing[10] == {2}
    state.apply_event(event("typing.stopped", {"user_id": 2}))
    assert state.typing[10] == set()

    state.apply_event(event("conversation.updated", {"id": 10, "type": "group", "name": "renamed", "created_by": 1}))
    assert state.conversations[10].conversation.name == "renamed"

    state.apply_event(event("member.removed", {"user_id": 1}))
    assert 10 not in state.conversations


def test_conversation_created_adds_entry():
    state = LocalState(user_id=1)
    state.apply_event(event("conversation.created", {"id": 11, "type": "dm", "name": "Direct message", "created_by": 1}, 11))
    assert state.conversations[11].role == "owner"


def test_unknown_and_malformed_events_are_ignored():
    state = LocalState(user_id=1)
    assert state.apply_event(event("call.offer", {"sdp": "v=0"})) is False
    assert state.apply_event(event("message.created", {"id": "nope"})) is False
    assert state.apply_event(event("reaction.removed", {"message_id": 5})) is False
