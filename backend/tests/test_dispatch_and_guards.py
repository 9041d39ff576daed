import json

from learnrail import responses
from learnrail.config import Settings
from learnrail.context import RawRequest
from learnrail.dispatcher import Dispatcher
from learnrail.guards import GUARDS
from learnrail.routing import RouteTable

from conftest import bearer, make_user, subscribe


def _body(response):
    return json.loads(response.body)


def _boom(ctx):
    raise RuntimeError("database exploded")


def _echo(ctx, id):
    return responses.success({"id": id, "user_id": ctx.user_id})


def _dispatcher(prefix=""):
    settings = Settings()
    settings.MOUNT_PREFIX = prefix
    table = RouteTable()
    table.get("/api/boom", _boom)
    table.get("/api/items/{id}", _echo, guards=[GUARDS["auth"]])
    return Dispatcher(settings, routes=table)


def test_options_short_circuits(session):
    response = _dispatcher().dispatch(RawRequest(method="OPTIONS", path="/api/anything"), session)
    assert response.status_code == 200
    assert response.body == b""


def test_unknown_route_is_404(session):
    response = _dispatcher().dispatch(RawRequest(method="GET", path="/api/nowhere"), session)
    assert response.status_code == 404
    assert _body(response) == {"success": False, "message": "Endpoint not found"}


def test_mount_prefix_is_stripped(session, codec):
    user = make_user(session)
    headers = {k.lower(): v for k, v in bearer(codec, user).items()}
    raw = RawRequest(method="GET", path="/learnrail/api/items/12", headers=headers)
    response = _dispatcher("/learnrail").dispatch(raw, session)
    assert response.status_code == 200
    assert _body(response)["data"] == {"id": "12", "user_id": user.id}


def test_unexpected_error_is_500_without_details(session):
    response = _dispatcher().dispatch(RawRequest(method="GET", path="/api/boom"), session)
    assert response.status_code == 500
    body = _body(response)
    assert body["message"] == "Internal server error"
    assert "exploded" not in response.body.decode()


def test_guard_rejection_stops_the_handler(session):
    response = _dispatcher().dispatch(RawRequest(method="GET", path="/api/items/1"), session)
    assert response.status_code == 401
    assert _body(response)["message"] == "No token provided"


def test_missing_and_invalid_tokens(client):
    r = client.get("/api/auth/me")
    assert r.status_code == 401
    assert r.json()["message"] == "No token provided"
    r = client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired token"


def test_bearer_scheme_must_lead_the_header(client, session, codec):
    user = make_user(session)
    token = codec.issue_access(user.id, user.role, 3600)
    r = client.get("/api/auth/me", headers={"Authorization": f"X Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["message"] == "No token provided"
    r = client.get("/api/auth/me", headers={"Authorization": f"bearer {token}"})
    assert r.status_code == 200


def test_refresh_token_cannot_authenticate(client, session, codec):
    user = make_user(session)
    token = codec.issue_refresh(user.id, 3600)
    r = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_admin_guard_reads_role_from_store(client, session, codec):
    user = make_user(session)
    # a forged role claim is not enough
    forged = codec.issue_access(user.id, "admin", 3600)
    r = client.get("/api/admin/dashboard", headers={"Authorization": f"Bearer {forged}"})
    assert r.status_code == 403
    assert r.json()["message"] == "Admin access required"

    admin = make_user(session, email="admin@example.com", role="admin")
    r = client.get("/api/admin/dashboard", headers=bearer(codec, admin))
    assert r.status_code == 200
    assert r.json()["data"]["total_users"] == 2


def test_subscribed_guard(client, session, codec):
    user = make_user(session)
    r = client.get("/api/goals", headers=bearer(codec, user))
    assert r.status_code == 403
    assert r.json()["message"] == "Active subscription required"

    subscribe(session, user)
    r = client.get("/api/goals", headers=bearer(codec, user))
    assert r.status_code == 200
    assert r.json()["meta"]["total"] == 0
    assert r.json()["meta"]["last_page"] == 1


def test_request_id_is_echoed(client):
    r = client.get("/api/health", headers={"X-Request-ID": "abc123"})
    assert r.status_code == 200
    assert r.headers["X-Request-ID"] == "abc123"
    assert r.json()["data"]["status"] == "ok"


def test_non_numeric_id_is_404(client, session, codec):
    user = make_user(session)
    r = client.get("/api/lessons/abc", headers=bearer(codec, user))
    assert r.status_code == 404
