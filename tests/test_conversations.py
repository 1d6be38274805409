"""
Tests for conversations: defaults, creation rules, membership and read watermarks.
"""

from tests.helpers import API, BOB, CAROL, DAVE


class TestDefaults:

    def test_listing_creates_default_conversations(self, alice):
        items = alice.conversations()
        names = {item["conversation"]["name"]: item for item in items}
        assert {"#general", "#announcements", "Notes to Self", "Password Vault"} <= set(names)
        assert names["#general"]["role"] == "member"
        assert names["Notes to Self"]["role"] == "owner"
        assert names["Password Vault"]["conversation"]["type"] == "password_vault"

    def test_global_channels_backfill_existing_users(self, alice, bob):
        general = alice.conversation_named("#general")
        resp = bob.get(f"/conversations/{general['id']}")
        assert resp.status_code == 200
        member_ids = {m["user_id"] for m in resp.json()["members"]}
        assert {1, BOB, CAROL, DAVE} <= member_ids

    def test_defaults_are_not_duplicated(self, alice):
        first = alice.conversations()
        second = alice.conversations()
        assert len(first) == len(second)

    def test_missing_token_is_rejected(self, client):
        resp = client.get(f"{API}/conversations")
        assert resp.status_code == 401
        assert resp.json() == {"error": "User not authenticated"}


class TestCreate:

    def test_dm_is_reused(self, alice, bob):
        first = alice.post("/conversations", json={"type": "dm", "user_ids": [BOB]})
        assert first.status_code == 201
        again = bob.post("/conversations", json={"type": "dm", "user_ids": [1]})
        assert again.status_code == 201
        assert again.json()["conversation"]["id"] == first.json()["conversation"]["id"]

    def test_dm_requires_exactly_one_other_user(self, alice):
        resp = alice.post("/conversations", json={"type": "dm", "user_ids": [BOB, CAROL]})
        assert resp.status_code == 422
        assert "exactly one" in resp.json()["error"]

    def test_dm_with_unknown_user(self, alice):
        resp = alice.post("/conversations", json={"type": "dm", "user_ids": [999]})
        assert resp.status_code == 404

    def test_group_requires_existing_users(self, alice):
        resp = alice.post("/conversations", json={"type": "group", "name": "crew", "user_ids": [BOB, 999]})
        assert resp.status_code == 400

    def test_group_creator_is_owner(self, alice):
        group = alice.create_group("crew", [BOB])
        detail = alice.get(f"/conversations/{group['id']}").json()
        roles = {m["user_id"]: m["role"] for m in detail["members"]}
        assert roles == {1: "owner", BOB: "member"}

    def test_team_requires_team_id(self, alice):
        resp = alice.post("/conversations", json={"type": "team", "name": "eng"})
        assert resp.status_code == 422

    def test_global_and_vault_cannot_be_created(self, alice):
        for kind in ("global", "password_vault"):
            resp = alice.post("/conversations", json={"type": kind, "name": "x"})
            assert resp.status_code == 422

    def test_self_is_idempotent(self, alice):
        first = alice.post("/conversations", json={"type": "self"}).json()["conversation"]
        second = alice.post("/conversations", json={"type": "self"}).json()["conversation"]
        assert first["id"] == second["id"]
        assert first["name"] == "Notes to Self"


class TestAccess:

    def test_non_member_is_forbidden(self, alice, carol):
        group = alice.create_group("crew", [BOB])
        assert carol.get(f"/conversations/{group['id']}").status_code == 403
        assert carol.get(f"/conversations/{group['id']}/messages").status_code == 403

    def test_unknown_conversation(self, alice):
        assert alice.get("/conversations/9999").status_code == 404


class TestManagement:

    def test_only_admins_update(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        assert bob.patch(f"/conversations/{group['id']}", json={"name": "mine"}).status_code == 403
        resp = alice.patch(f"/conversations/{group['id']}", json={"name": "renamed", "topic": "plans"})
        assert resp.status_code == 200
        assert resp.json()["conversation"]["name"] == "renamed"
        assert resp.json()["conversation"]["topic"] == "plans"

    def test_archived_conversation_rejects_messages(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        alice.patch(f"/conversations/{group['id']}", json={"is_archived": True})
        resp = bob.post(f"/conversations/{group['id']}/messages", json={"body": "anyone?"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "Conversation is archived"
        assert bob.get(f"/conversations/{group['id']}/messages").status_code == 200

    def test_add_and_remove_member(self, alice, bob, carol):
        group = alice.create_group("crew", [BOB])
        assert bob.post(f"/conversations/{group['id']}/members", json={"user_id": CAROL}).status_code == 403
        resp = alice.post(f"/conversations/{group['id']}/members", json={"user_id": CAROL, "role": "viewer"})
        assert resp.status_code == 201
        assert resp.json()["member"]["role"] == "viewer"
        assert carol.get(f"/conversations/{group['id']}").status_code == 200

        assert alice.delete(f"/conversations/{group['id']}/members/{CAROL}").status_code == 200
        assert carol.get(f"/conversations/{group['id']}").status_code == 403

    def test_member_can_leave(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        assert bob.delete(f"/conversations/{group['id']}/members/{BOB}").status_code == 200
        assert bob.get(f"/conversations/{group['id']}").status_code == 403

    def test_viewer_cannot_post(self, alice, carol):
        group = alice.create_group("crew", [])
        alice.post(f"/conversations/{group['id']}/members", json={"user_id": CAROL, "role": "viewer"})
        resp = carol.post(f"/conversations/{group['id']}/messages", json={"body": "hi"})
        assert resp.status_code == 403

    def test_hidden_conversations_are_not_listed(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        resp = bob.patch(f"/conversations/{group['id']}/membership", json={"is_hidden": True})
        assert resp.json()["membership"]["is_hidden"] is True
        assert group["id"] not in {i["conversation"]["id"] for i in bob.conversations()}
        assert group["id"] in {i["conversation"]["id"] for i in alice.conversations()}

    def test_mute_can_be_cleared_with_explicit_null(self, alice):
        convo = alice.conversation_named("#general")
        path = f"/conversations/{convo['id']}/membership"
        muted = alice.patch(path, json={"muted_until": "2099-01-01T00:00:00Z"}).json()["membership"]
        assert muted["muted_until"].startswith("2099-01-01")
        cleared = alice.patch(path, json={"muted_until": None}).json()["membership"]
        assert cleared["muted_until"] is None


class TestReadWatermark:

    def test_watermark_never_regresses(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        ids = [alice.send(group["id"], f"message {n}")["message"]["id"] for n in range(3)]

        item = next(i for i in bob.conversations() if i["conversation"]["id"] == group["id"])
        assert item["unread_count"] == 3

        resp = bob.post(f"/conversations/{group['id']}/read", json={"last_read_message_id": ids[2]})
        assert resp.json()["membership"]["last_read_message_id"] == ids[2]
        resp = bob.post(f"/conversations/{group['id']}/read", json={"last_read_message_id": ids[0]})
        assert resp.json()["membership"]["last_read_message_id"] == ids[2]

        item = next(i for i in bob.conversations() if i["conversation"]["id"] == group["id"])
        assert item["unread_count"] == 0

    def test_fetching_history_does_not_mark_read(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        alice.send(group["id"], "unseen")
        bob.get(f"/conversations/{group['id']}/messages")
        item = next(i for i in bob.conversations() if i["conversation"]["id"] == group["id"])
        assert item["unread_count"] == 1

    def test_own_messages_are_not_unread(self, alice):
        group = alice.create_group("solo", [])
        alice.send(group["id"], "note")
        item = next(i for i in alice.conversations() if i["conversation"]["id"] == group["id"])
        assert item["unread_count"] == 0
        assert item["last_message"]["body"] == "note"

    def test_read_marker_must_belong_to_conversation(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        other = alice.create_group("other", [BOB])
        message = alice.send(other["id"], "elsewhere")["message"]
        resp = bob.post(f"/conversations/{group['id']}/read", json={"last_read_message_id": message["id"]})
        assert resp.status_code == 404
