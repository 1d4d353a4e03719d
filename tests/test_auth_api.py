"""HTTP surface of /auth: status codes, camelCase bodies and the error envelope."""

from fastapi.testclient import TestClient
from sqlalchemy import update

from authstarter.core.security import hash_token
from authstarter.db.session import Database
from authstarter.main import create_app
from authstarter.models.password_reset import PasswordReset
from authstarter.models.verification import EmailVerification

EMAIL = "user@example.com"
PASSWORD = "Passw0rd!"
NEW_PASSWORD = "N3wPassw0rd!"


def _register(client, email=EMAIL, password=PASSWORD):
    r = client.post("/auth/register", json={"email": email, "password": password})
    assert r.status_code == 201, r.text
    return r.json()


def _login(client, email=EMAIL, password=PASSWORD):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()


def _seed_token(sync_engine, model, raw: str) -> None:
    # tokens only leave the service by email; swap the stored hash for one we know
    with sync_engine.begin() as conn:
        conn.execute(update(model).where(model.consumed_at.is_(None)).values(token_hash=hash_token(raw)))


def test_health(client):
    assert client.get("/health").json() == {"ok": True}


def test_ready(client):
    r = client.get("/ready")
    assert r.status_code == 200
    assert r.json() == {"ready": True}


def test_ready_reports_unavailable_database(settings_factory, mailer, tmp_path):
    broken = Database(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/auth.db")
    app = create_app(settings_factory(), mailer=mailer, database=broken, configure_logging=False)
    with TestClient(app) as client:
        r = client.get("/ready")
    assert r.status_code == 503
    assert r.json() == {"ready": False}


def test_register_returns_tokens(client):
    body = _register(client)

    assert body["emailVerificationRequired"] is False
    assert body["accessToken"] and body["refreshToken"]


def test_register_duplicate_email(client):
    _register(client)
    r = client.post("/auth/register", json={"email": EMAIL.upper(), "password": PASSWORD})

    assert r.status_code == 409
    assert r.json()["error"]["code"] == "EMAIL_TAKEN"


def test_register_validation_errors(client):
    r = client.post("/auth/register", json={"email": "nope", "password": "short"})

    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "VALIDATION"
    assert error["message"] == "Invalid request payload"
    assert {tuple(d["loc"]) for d in error["details"]} >= {("body", "email"), ("body", "password")}


def test_login_missing_password_is_validation_error(client):
    r = client.post("/auth/login", json={"email": "a@example.com"})

    assert r.status_code == 400
    assert r.json()["error"]["code"] == "VALIDATION"


def test_login_wrong_password(client):
    _register(client)
    r = client.post("/auth/login", json={"email": EMAIL, "password": "Wr0ngPass!"})

    assert r.status_code == 401
    assert r.json() == {"error": {"message": "Invalid email or password", "code": "INVALID_CREDENTIALS"}}


def test_login_lockout(client):
    _register(client)
    for _ in range(3):
        assert client.post("/auth/login", json={"email": EMAIL, "password": "Wr0ngPass!"}).status_code == 401

    r = client.post("/auth/login", json={"email": EMAIL, "password": PASSWORD})
    assert r.status_code == 429
    assert r.json()["error"]["code"] == "LOGIN_LOCKED"


def test_refresh_body_validation(client):
    missing = client.post("/auth/refresh", json={})
    assert missing.status_code == 400
    assert missing.json()["error"]["code"] == "VALIDATION"

    empty = client.post("/auth/refresh", json={"refreshToken": ""})
    assert empty.status_code == 400
    assert empty.json()["error"]["code"] == "REFRESH_REQUIRED"


def test_refresh_with_garbage_token(client):
    r = client.post("/auth/refresh", json={"refreshToken": "garbage"})

    assert r.status_code == 401
    assert r.json()["error"]["code"] == "JWT_REFRESH_INVALID"


def test_rotation_and_reuse_scenario(client):
    _register(client)
    refresh_token_1 = _login(client)["refreshToken"]

    r = client.post("/auth/refresh", json={"refreshToken": refresh_token_1})
    assert r.status_code == 200
    refresh_token_2 = r.json()["refreshToken"]
    assert refresh_token_2 != refresh_token_1

    r = client.post("/auth/refresh", json={"refreshToken": refresh_token_1})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "REFRESH_REUSE"

    r = client.post("/auth/refresh", json={"refreshToken": refresh_token_2})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "SESSION_INVALID"


def test_logout_always_204(client):
    tokens = _register(client)

    for token in (tokens["refreshToken"], tokens["refreshToken"], "garbage"):
        r = client.post("/auth/logout", json={"refreshToken": token})
        assert r.status_code == 204
        assert r.content == b""

    r = client.post("/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert r.json()["error"]["code"] == "SESSION_INVALID"


def test_request_password_reset_same_response(client):
    _register(client)

    known = client.post("/auth/request-password-reset", json={"email": EMAIL})
    unknown = client.post("/auth/request-password-reset", json={"email": "ghost@example.com"})

    assert known.status_code == unknown.status_code == 202
    assert known.json() == unknown.json() == {"status": "ok"}


def test_reset_password_flow(client, sync_engine):
    old = _register(client)
    client.post("/auth/request-password-reset", json={"email": EMAIL})
    _seed_token(sync_engine, PasswordReset, "known-reset-token")

    weak = client.post("/auth/reset-password", json={"token": "known-reset-token", "password": "weak"})
    assert weak.status_code == 400
    assert weak.json()["error"]["code"] == "VALIDATION"

    r = client.post("/auth/reset-password", json={"token": "known-reset-token", "password": NEW_PASSWORD})
    assert r.status_code == 204

    again = client.post("/auth/reset-password", json={"token": "known-reset-token", "password": NEW_PASSWORD})
    assert again.json()["error"]["code"] == "PASSWORD_RESET_INVALID"

    stale = client.post("/auth/refresh", json={"refreshToken": old["refreshToken"]})
    assert stale.json()["error"]["code"] == "SESSION_INVALID"
    assert client.post("/auth/login", json={"email": EMAIL, "password": PASSWORD}).status_code == 401
    _login(client, password=NEW_PASSWORD)


def test_verify_email_flow(app_factory, sync_engine):
    with TestClient(app_factory(email_verification_required=True)) as client:
        body = _register(client)
        assert body == {"emailVerificationRequired": True}
        assert client.post("/auth/login", json={"email": EMAIL, "password": PASSWORD}).status_code == 401

        _seed_token(sync_engine, EmailVerification, "known-verify-token")
        assert client.post("/auth/verify-email", json={"token": "known-verify-token"}).status_code == 204

        again = client.post("/auth/verify-email", json={"token": "known-verify-token"})
        assert again.status_code == 400
        assert again.json()["error"]["code"] == "EMAIL_VERIFICATION_INVALID"

        _login(client)


def test_sessions_and_logout_all(client):
    _register(client)
    _login(client)
    tokens = _login(client)
    auth = {"Authorization": f"Bearer {tokens['accessToken']}"}

    r = client.get("/auth/sessions", headers=auth)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 3
    newest = body["sessions"][0]
    assert newest["current"] is True
    assert newest["ip"] == "testclient"
    assert {"id", "createdAt", "updatedAt", "valid", "userAgent", "current"} <= set(newest)
    assert "refreshTokenHash" not in newest

    assert client.post("/auth/logout-all", headers=auth).status_code == 204

    r = client.get("/auth/sessions", headers=auth)
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"


def test_sessions_require_bearer(client):
    assert client.get("/auth/sessions").status_code == 401
    r = client.get("/auth/sessions", headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "UNAUTHORIZED"
    assert client.post("/auth/logout-all").status_code == 401
