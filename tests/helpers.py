"""Shared test helpers: seeded users, tokens and a per-user HTTP wrapper."""

from messaging.utils.security import create_access_token

API = "/api/v1/messages"

ALICE, BOB, CAROL, DAVE = 1, 2, 3, 4

USERS = [
    {"_id": ALICE, "username": "alice", "email": "alice@example.com"},
    {"_id": BOB, "username": "bob", "email": "bob@example.com"},
    {"_id": CAROL, "username": "carol", "email": "carol@example.com"},
    {"_id": DAVE, "username": "dave", "email": "dave@example.com"},
]


def auth_headers(user_id: int) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


class UserSession:
    """Issues requests against the messaging API as one user."""

    def __init__(self, client, user_id: int):
        self.client = client
        self.user_id = user_id

    def _call(self, method: str, path: str, **kwargs):
        headers = {**auth_headers(self.user_id), **kwargs.pop("headers", {})}
        return self.client.request(method, API + path, headers=headers, **kwargs)

    def get(self, path: str, **kwargs):
        return self._call("GET", path, **kwargs)

    def post(self, path: str, **kwargs):
        return self._call("POST", path, **kwargs)

    def patch(self, path: str, **kwargs):
        return self._call("PATCH", path, **kwargs)

    def delete(self, path: str, **kwargs):
        return self._call("DELETE", path, **kwargs)

    def websocket(self):
        token = create_access_token(self.user_id)
        return self.client.websocket_connect(f"{API}/ws?token={token}")

    # shortcuts for the common setup steps

    def conversations(self) -> list:
        resp = self.get("/conversations")
        assert resp.status_code == 200, resp.text
        return resp.json()["conversations"]

    def conversation_named(self, name: str) -> dict:
        for item in self.conversations():
            if item["conversation"]["name"] == name:
                return item["conversation"]
        raise AssertionError(f"no conversation named {name}")

    def create_group(self, name: str, members: list) -> dict:
        resp = self.post("/conversations", json={"type": "group", "name": name, "user_ids": members})
        assert resp.status_code == 201, resp.text
        return resp.json()["conversation"]

    def send(self, conversation_id: int, body: str = "", **fields) -> dict:
        resp = self.post(f"/conversations/{conversation_id}/messages", json={"body": body, **fields})
        assert resp.status_code == 201, resp.text
        return resp.json()
