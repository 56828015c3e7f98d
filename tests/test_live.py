# File: tests/test_live.py

import asyncio
import datetime as dt
import logging
import time
from types import SimpleNamespace

import pytest
from jose import jwt
from starlette.websockets import WebSocketDisconnect

from auth.security import JWT_ALG, JWT_SECRET
from routes.complaints import live_complaints
from utils.complaint_feed import ComplaintFeed
from utils.date_utils import utcnow


def _wait_released(feed, timeout=2.0):
    deadline = time.monotonic() + timeout
    while feed.subscriber_count and time.monotonic() < deadline:
        time.sleep(0.01)
    return feed.subscriber_count


def test_bad_token_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/complaints/live?token=garbage") as ws:
            ws.receive_json()
    assert exc.value.code == 4401


def test_live_view_follows_new_complaints(client, make_user, login, lodge):
    make_user("a@college.edu", branch="CS")
    make_user("b@college.edu", branch="EE")
    make_user("hod.cs@college.edu", role="hod", branch="CS")
    token = login("hod.cs@college.edu")["access_token"]
    feed = client.app.state.complaint_feed

    with client.websocket_connect(f"/complaints/live?token={token}") as ws:
        first = ws.receive_json()
        assert first == {"items": [], "total": 0}
        assert feed.subscriber_count == 1

        mine = lodge("a@college.edu")
        snap = ws.receive_json()
        assert snap["total"] == 1
        assert snap["items"][0]["id"] == mine["id"]

        # another branch: a fresh snapshot arrives but it is still scoped
        lodge("b@college.edu")
        snap = ws.receive_json()
        assert [c["id"] for c in snap["items"]] == [mine["id"]]

    assert _wait_released(feed) == 0


def test_live_view_reflects_resolution(client, make_user, login, lodge, auth_headers):
    make_user("a@college.edu", branch="CS")
    make_user("admin@college.edu", role="admin", branch="Office")
    c = lodge("a@college.edu")
    token = login("a@college.edu")["access_token"]

    with client.websocket_connect(f"/complaints/live?token={token}&status=Pending") as ws:
        assert ws.receive_json()["total"] == 1
        client.post(f"/complaints/{c['id']}/resolve", headers=auth_headers("admin@college.edu"))
        assert ws.receive_json() == {"items": [], "total": 0}


def test_live_view_outlives_access_token(client, make_user, lodge):
    hod = make_user("hod.cs@college.edu", role="hod", branch="CS")
    make_user("a@college.edu", branch="CS")
    short_lived = jwt.encode(
        {"sub": str(hod.user_id), "role": "hod", "exp": utcnow() + dt.timedelta(seconds=1)},
        JWT_SECRET, algorithm=JWT_ALG,
    )

    with client.websocket_connect(f"/complaints/live?token={short_lived}") as ws:
        assert ws.receive_json()["total"] == 0
        time.sleep(2)
        lodge("a@college.edu")
        assert ws.receive_json()["total"] == 1


def test_role_change_rescopes_open_view(client, make_user, login, lodge, auth_headers):
    make_user("a@college.edu", branch="EE")
    b = make_user("b@college.edu", branch="EE")
    make_user("admin@college.edu", role="admin", branch="Office")
    theirs = lodge("a@college.edu")
    token = login("b@college.edu")["access_token"]

    with client.websocket_connect(f"/complaints/live?token={token}") as ws:
        assert ws.receive_json()["total"] == 0
        resp = client.patch(
            f"/auth/users/{b.user_id}/role", json={"role": "hod"},
            headers=auth_headers("admin@college.edu"),
        )
        assert resp.status_code == 200
        snap = ws.receive_json()
        assert [c["id"] for c in snap["items"]] == [theirs["id"]]


def test_deleted_user_socket_is_closed(client, make_user, login, auth_headers):
    a = make_user("a@college.edu", branch="CS")
    make_user("admin@college.edu", role="admin", branch="Office")
    token = login("a@college.edu")["access_token"]
    admin = auth_headers("admin@college.edu")
    feed = client.app.state.complaint_feed

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/complaints/live?token={token}") as ws:
            assert ws.receive_json()["total"] == 0
            assert client.delete(f"/auth/users/{a.user_id}", headers=admin).status_code == 204
            ws.receive_json()
    assert exc.value.code == 4401
    assert _wait_released(feed) == 0


class BrokenSocket:
    """Accepts and sends, but every receive fails as on a half-closed socket."""

    def __init__(self):
        self.app = SimpleNamespace(state=SimpleNamespace(complaint_feed=ComplaintFeed()))
        self.sent = []

    async def accept(self):
        pass

    async def send_json(self, data):
        self.sent.append(data)

    async def receive(self):
        await asyncio.sleep(0.3)
        raise RuntimeError("socket already closed")

    async def close(self, code=1000, reason=None):
        pass


def test_socket_failure_is_logged_and_released(client, make_user, login, caplog):
    make_user("a@college.edu")
    token = login("a@college.edu")["access_token"]
    ws = BrokenSocket()

    with caplog.at_level(logging.WARNING, logger="routes.complaints"):
        asyncio.run(live_complaints(ws, token=token, status_q=None, category=None))

    assert ws.sent == [{"items": [], "total": 0}]
    assert ws.app.state.complaint_feed.subscriber_count == 0
    assert "socket already closed" in caplog.text
