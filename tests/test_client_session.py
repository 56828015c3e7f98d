# File: tests/test_client_session.py

import httpx
import pytest

from auth.guard import RouteAction
from grievance_client.api import CONNECTIVITY_ERROR, ApiError, GrievanceClient
from grievance_client.session import (
    PROFILE_NOT_FOUND, SESSION_EXPIRED, AuthContext, SessionEvent, SessionStore,
)
from grievance_client.validation import ValidationError
from Models.auth_models import User
from auth.security import hash_password


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path))


@pytest.fixture
def ctx(client, store):
    return AuthContext(GrievanceClient(http=client), store)


def _unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.Client(transport=httpx.MockTransport(handler), base_url="http://grievance.invalid")


def test_loading_until_start(ctx):
    assert ctx.loading is True
    assert ctx.guard("/my-complaints").action is RouteAction.LOADING
    ctx.start()
    assert ctx.loading is False
    assert ctx.user is None
    assert ctx.guard("/my-complaints").location == "/"


def test_register_does_not_sign_in(ctx):
    result = ctx.register("Asha@College.edu", "secret123", "Asha", "CS", confirm_password="secret123")
    assert result.success and result.error is None
    assert ctx.user is None

    result = ctx.login("asha@college.edu", "secret123")
    assert result.success
    assert (ctx.user.email, ctx.user.role, ctx.user.branch) == ("asha@college.edu", "student", "CS")


def test_register_validation_runs_before_request(store):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(201, json={})

    api = GrievanceClient(http=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://x.invalid"))
    ctx = AuthContext(api, store)
    assert ctx.register("a@college.edu", "secret123", "A", "CS", "secret124").error == "Passwords do not match"
    assert ctx.register("a@college.edu", "abc", "A", "CS", "abc").error == "Password must be at least 6 characters"
    assert ctx.register("a@college.edu", "secret123", "A", "", "secret123").error == "Please select your branch"
    assert calls == []


def test_register_duplicate_reports_server_detail(ctx, make_user):
    make_user("a@college.edu")
    result = ctx.register("a@college.edu", "secret123", "A", "CS")
    assert not result.success
    assert result.error == "Email already registered"


def test_login_persists_snapshot_and_start_restores(client, ctx, store, make_user):
    make_user("a@college.edu", branch="CS", name="Asha")
    events = []
    ctx.subscribe(lambda event, user: events.append(event))
    assert ctx.login(" A@college.edu ", "secret123").success
    assert events == [SessionEvent.SIGNED_IN]
    assert store.path.name == "campusGrievanceUser.json"
    assert store.load()["user"]["email"] == "a@college.edu"

    # a second process picks the session up from the snapshot
    fresh = AuthContext(GrievanceClient(http=client), store)
    seen = []
    fresh.subscribe(lambda event, user: seen.append((event, user.email if user else None)))
    fresh.start()
    assert fresh.loading is False
    assert seen == [(SessionEvent.TOKEN_REFRESHED, "a@college.edu")]
    assert fresh.guard("/lodge-complaint").action is RouteAction.RENDER


def test_wrong_password(ctx, make_user):
    make_user("a@college.edu")
    result = ctx.login("a@college.edu", "not-it")
    assert not result.success
    assert result.error == "Invalid email or password"
    assert ctx.user is None


def test_profile_not_found_on_login(ctx, db):
    db.add(User(email="orphan@college.edu", password_hash=hash_password("secret123")))
    db.commit()
    result = ctx.login("orphan@college.edu", "secret123")
    assert (result.success, result.error) == (False, PROFILE_NOT_FOUND)


def test_logout_clears_snapshot(ctx, store, make_user):
    make_user("a@college.edu")
    ctx.login("a@college.edu", "secret123")
    events = []
    ctx.subscribe(lambda event, user: events.append((event, user)))
    ctx.logout()
    assert ctx.user is None
    assert store.load() is None
    assert events == [(SessionEvent.SIGNED_OUT, None)]


def test_revoked_session_signs_out_on_start(client, ctx, store, make_user):
    make_user("a@college.edu")
    ctx.login("a@college.edu", "secret123")
    saved = store.load()
    client.post("/auth/logout", json={"refresh_token": saved["refresh_token"]})

    fresh = AuthContext(GrievanceClient(http=client), store)
    events = []
    fresh.subscribe(lambda event, user: events.append(event))
    fresh.start()
    assert fresh.user is None
    assert store.load() is None
    assert events == [SessionEvent.SIGNED_OUT]


def test_unreachable_service_keeps_cached_identity(store):
    store.save({
        "user": {"user_id": 3, "email": "a@college.edu", "name": "Asha", "branch": "CS", "role": "student"},
        "access_token": "cached-access",
        "refresh_token": "cached-refresh",
    })
    ctx = AuthContext(GrievanceClient(http=_unreachable()), store)
    events = []
    ctx.subscribe(lambda event, user: events.append(event))
    ctx.start()
    assert ctx.loading is False
    assert ctx.user.email == "a@college.edu"
    assert events == [SessionEvent.RESTORED]


def test_unreachable_service_on_login(store):
    ctx = AuthContext(GrievanceClient(http=_unreachable()), store)
    result = ctx.login("a@college.edu", "secret123")
    assert (result.success, result.error) == (False, CONNECTIVITY_ERROR)


def test_corrupt_snapshot_is_discarded(store):
    store.directory.mkdir(parents=True, exist_ok=True)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None
    assert not store.path.exists()


def test_listeners_run_in_order_and_unsubscribe(ctx, make_user):
    make_user("a@college.edu")
    order = []
    ctx.subscribe(lambda e, u: order.append("first"))
    unsubscribe = ctx.subscribe(lambda e, u: order.append("second"))

    def broken(e, u):
        raise RuntimeError("listener bug")

    ctx.subscribe(broken)
    ctx.subscribe(lambda e, u: order.append("last"))
    ctx.login("a@college.edu", "secret123")
    assert order == ["first", "second", "last"]

    unsubscribe()
    order.clear()
    ctx.logout()
    assert order == ["first", "last"]


def test_submit_complaint_validates_first(store):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(201, json={})

    api = GrievanceClient(http=httpx.Client(transport=httpx.MockTransport(handler), base_url="http://x.invalid"))
    with pytest.raises(ValidationError) as exc:
        api.submit_complaint("Academic", "too short")
    assert exc.value.field == "description"
    with pytest.raises(ValidationError) as exc:
        api.submit_complaint("", "A description that is certainly long enough.")
    assert exc.value.message == "Please select a category"
    assert calls == []


def test_client_round_trip_against_service(client, make_user):
    make_user("a@college.edu", branch="CS")
    make_user("hod.cs@college.edu", role="hod", branch="CS", name="Dr Rao")

    student = GrievanceClient(http=client)
    student.access_token = student.login("a@college.edu", "secret123")["access_token"]
    c = student.submit_complaint("Infrastructure", "Broken benches in room 204 need replacing.", " ")
    assert c["attachment_url"] is None
    assert [x["id"] for x in student.list_complaints(status="Pending")] == [c["id"]]

    hod = GrievanceClient(http=client)
    hod.access_token = hod.login("hod.cs@college.edu", "secret123")["access_token"]
    assert hod.resolve_complaint(c["id"])["resolved_by"] == "Dr Rao"
    assert hod.complaint_stats()["resolution_rate"] == 100

    with pytest.raises(ApiError) as exc:
        student.resolve_complaint(c["id"])
    assert exc.value.status_code == 403


def test_refresh_recovers_from_expired_access_token(ctx, make_user):
    make_user("a@college.edu")
    ctx.login("a@college.edu", "secret123")
    ctx.api.access_token = "expired"
    with pytest.raises(ApiError) as exc:
        ctx.api.list_complaints()
    assert exc.value.status_code == 401

    events = []
    ctx.subscribe(lambda event, user: events.append(event))
    assert ctx.refresh().success
    assert events == [SessionEvent.TOKEN_REFRESHED]
    assert ctx.api.list_complaints() == []


def test_refresh_with_revoked_token_signs_out(client, ctx, store, make_user):
    make_user("a@college.edu")
    ctx.login("a@college.edu", "secret123")
    client.post("/auth/logout", json={"refresh_token": store.load()["refresh_token"]})

    result = ctx.refresh()
    assert (result.success, result.error) == (False, SESSION_EXPIRED)
    assert ctx.user is None
    assert store.load() is None
    assert ctx.guard("/my-complaints").location == "/"
