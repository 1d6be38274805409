"""
Tests for vault items: creation, sharing into conversations, reveal policy and unsharing.
"""

from messaging.services.vault_service import REVEAL_WARNING
from tests.helpers import BOB


def _create(session, **fields):
    body = {"label": "wifi", "secret": "correct-horse", **fields}
    resp = session.post("/password-vault/items", json=body)
    assert resp.status_code == 201, resp.text
    return resp.json()["item"]


class TestItems:

    def test_create_and_list(self, alice, bob):
        item = _create(alice, notes="office router")
        assert item["label"] == "wifi"
        assert item["owner_user_id"] == 1
        assert item["shared"] is False
        assert item["allow_reveal"] is True
        assert "secret" not in item

        assert [i["id"] for i in alice.get("/password-vault/items").json()["items"]] == [item["id"]]
        assert bob.get("/password-vault/items").json()["items"] == []

    def test_owner_reveal(self, alice):
        item = _create(alice, notes="office router")
        resp = alice.post(f"/password-vault/items/{item['id']}/reveal")
        assert resp.status_code == 200
        assert resp.json() == {
            "id": item["id"],
            "label": "wifi",
            "secret": "correct-horse",
            "notes": "office router",
            "warning": REVEAL_WARNING,
        }
        listed = alice.get("/password-vault/items").json()["items"][0]
        assert listed["last_accessed_at"] is not None

    def test_label_and_secret_are_required(self, alice):
        assert alice.post("/password-vault/items", json={"label": " ", "secret": "x"}).status_code == 422
        assert alice.post("/password-vault/items", json={"label": "x", "secret": ""}).status_code == 422

    def test_unknown_item(self, alice):
        assert alice.post("/password-vault/items/4242/reveal").status_code == 404

    def test_reveal_disabled_blocks_the_owner_too(self, alice):
        item = _create(alice, allow_reveal=False)
        resp = alice.post(f"/password-vault/items/{item['id']}/reveal")
        assert resp.status_code == 403

    def test_expired_item_cannot_be_revealed(self, alice):
        item = _create(alice, expires_at="2000-01-01T00:00:00Z")
        assert alice.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403

    def test_source_message_is_sealed(self, alice):
        group = alice.create_group("crew", [])
        message = alice.send(group["id"], "door code 4412")["message"]
        assert message["is_sensitive"] is False

        _create(alice, secret="4412", source_message_id=message["id"])
        stored = alice.get(f"/conversations/{group['id']}/messages").json()["messages"][0]
        assert stored["is_sensitive"] is True
        assert "4412" not in stored["body"]
        revealed = alice.post(f"/messages/{message['id']}/reveal-sensitive").json()
        assert revealed["plaintext"] == "door code 4412"

    def test_source_message_must_be_visible(self, alice, carol):
        group = carol.create_group("carol only", [])
        message = carol.send(group["id"], "door code 4412")["message"]
        resp = alice.post("/password-vault/items", json={"label": "door", "secret": "4412", "source_message_id": message["id"]})
        assert resp.status_code == 403


class TestSharing:

    def test_share_lets_members_list_and_reveal(self, alice, bob, carol):
        group = alice.create_group("crew", [BOB])
        item = _create(alice)

        resp = alice.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": group["id"]})
        assert resp.status_code == 200
        shared = resp.json()["item"]
        assert shared["shared"] is True
        assert shared["target_conversation_id"] == group["id"]

        assert [i["id"] for i in bob.get("/password-vault/items").json()["items"]] == [item["id"]]
        assert bob.post(f"/password-vault/items/{item['id']}/reveal").json()["secret"] == "correct-horse"
        assert carol.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403

    def test_only_owner_shares(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        item = _create(alice)
        resp = bob.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": group["id"]})
        assert resp.status_code == 403

    def test_owner_must_belong_to_target(self, alice, carol):
        foreign = carol.create_group("carol only", [])
        item = _create(alice)
        resp = alice.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": foreign["id"]})
        assert resp.status_code == 403
        resp = alice.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": 98765})
        assert resp.status_code == 404

    def test_share_policy_applies_to_sharees(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        item = _create(alice)
        alice.post(
            f"/password-vault/items/{item['id']}/share",
            json={"target_conversation_id": group["id"], "allow_reveal": False},
        )
        assert bob.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403
        assert alice.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403

    def test_expired_share_is_hidden_from_sharees(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        item = _create(alice)
        alice.post(
            f"/password-vault/items/{item['id']}/share",
            json={"target_conversation_id": group["id"], "expires_at": "2000-01-01T00:00:00Z"},
        )
        assert bob.get("/password-vault/items").json()["items"] == []
        assert bob.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403
        assert [i["id"] for i in alice.get("/password-vault/items").json()["items"]] == [item["id"]]

    def test_unshare(self, alice, bob):
        group = alice.create_group("crew", [BOB])
        item = _create(alice)
        alice.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": group["id"]})

        assert bob.post(f"/password-vault/items/{item['id']}/unshare").status_code == 403
        resp = alice.post(f"/password-vault/items/{item['id']}/unshare", json={"target_conversation_id": group["id"]})
        assert resp.status_code == 200
        assert resp.json()["item"]["shared"] is False

        assert bob.get("/password-vault/items").json()["items"] == []
        assert bob.post(f"/password-vault/items/{item['id']}/reveal").status_code == 403

    def test_unshare_everything(self, alice, bob):
        first = alice.create_group("one", [BOB])
        second = alice.create_group("two", [BOB])
        item = _create(alice)
        for group in (first, second):
            alice.post(f"/password-vault/items/{item['id']}/share", json={"target_conversation_id": group["id"]})
        assert alice.post(f"/password-vault/items/{item['id']}/unshare").json()["item"]["shared"] is False
