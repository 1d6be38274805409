from tests.helpers import BOB


def test_reaction_is_idempotent_per_user_and_emoji(alice, bob):
    group = alice.create_group("crew", [BOB])
    message = alice.send(group["id"], "ship it")["message"]

    first = bob.post(f"/messages/{message['id']}/reactions", json={"emoji": "👍"})
    second = bob.post(f"/messages/{message['id']}/reactions", json={"emoji": " 👍 "})
    assert first.status_code == 201
    assert first.json()["reaction"]["id"] == second.json()["reaction"]["id"]

    alice.post(f"/messages/{message['id']}/reactions", json={"emoji": "👍"})
    bob.post(f"/messages/{message['id']}/reactions", json={"emoji": "🎉"})

    reactions = alice.get(f"/conversations/{group['id']}/messages").json()["messages"][0]["reactions"]
    assert sorted((r["user_id"], r["emoji"]) for r in reactions) == [(1, "👍"), (BOB, "🎉"), (BOB, "👍")]


def test_remove_reaction_is_idempotent(alice, bob):
    group = alice.create_group("crew", [BOB])
    message = alice.send(group["id"], "ship it")["message"]
    bob.post(f"/messages/{message['id']}/reactions", json={"emoji": "👍"})

    assert bob.delete(f"/messages/{message['id']}/reactions/👍").status_code == 200
    assert bob.delete(f"/messages/{message['id']}/reactions/👍").status_code == 200
    reactions = bob.get(f"/conversations/{group['id']}/messages").json()["messages"][0]["reactions"]
    assert reactions == []


def test_blank_emoji_is_rejected(alice):
    group = alice.create_group("crew", [])
    message = alice.send(group["id"], "hm")["message"]
    assert alice.post(f"/messages/{message['id']}/reactions", json={"emoji": "  "}).status_code == 422


def test_non_member_cannot_react(alice, carol):
    group = alice.create_group("crew", [])
    message = alice.send(group["id"], "private")["message"]
    assert carol.post(f"/messages/{message['id']}/reactions", json={"emoji": "👀"}).status_code == 403
    assert carol.post("/messages/999999/reactions", json={"emoji": "👀"}).status_code == 404
