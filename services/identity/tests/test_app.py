from fastapi.testclient import TestClient

from carelink_identity.main import create_app
from carelink_identity.rate_limit import limiter


def test_apps_do_not_share_state(settings_factory, notifier) -> None:
    first = create_app(settings_factory(jwt_issuer="first"), notifier=notifier)
    second = create_app(settings_factory(jwt_issuer="second"), notifier=notifier)
    with TestClient(first) as a, TestClient(second) as b:
        r = a.post(
            "/api/v1/auth/register",
            json={"email": "solo@example.com", "password": "secret1", "display_name": "S", "role": "patient"},
        )
        assert r.status_code == 201
        # Separate in-memory databases: the same email is free in the other app.
        r = b.post(
            "/api/v1/auth/register",
            json={"email": "solo@example.com", "password": "secret1", "display_name": "S", "role": "patient"},
        )
        assert r.status_code == 201
    assert first.state.settings.jwt_issuer == "first"
    assert second.state.settings.jwt_issuer == "second"


def test_rate_limit_switch_follows_the_latest_app(settings_factory, notifier) -> None:
    try:
        create_app(settings_factory(rate_limit_enabled=True), notifier=notifier)
        assert limiter.enabled is True
        create_app(settings_factory(rate_limit_enabled=False), notifier=notifier)
        assert limiter.enabled is False
    finally:
        limiter.enabled = False


def test_password_reset_request_is_rate_limited(settings_factory, notifier) -> None:
    app = create_app(settings_factory(rate_limit_enabled=True), notifier=notifier)
    limiter.reset()
    try:
        with TestClient(app) as client:
            codes = [
                client.post(
                    "/api/v1/auth/password-reset/request", json={"email": "x@example.com"}
                ).status_code
                for _ in range(5)
            ]
    finally:
        limiter.reset()
        limiter.enabled = False
    assert codes[0] == 200
    assert codes[-1] == 429


def test_unknown_route_uses_error_envelope(client) -> None:
    r = client.get("/api/v1/nowhere")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "http_error"


def test_unexpected_errors_are_hidden(client, monkeypatch) -> None:
    from carelink_identity.auth import controller

    async def boom(*args, **kwargs):
        raise RuntimeError("database exploded: SELECT secret FROM accounts")

    monkeypatch.setattr(controller, "login", boom)
    r = client.post("/api/v1/auth/login", json={"email": "a@example.com", "password": "secret1"})
    assert r.status_code == 500
    body = r.json()
    assert body["error"]["code"] == "internal_error"
    assert "SELECT" not in r.text
