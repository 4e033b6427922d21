"""
Tests for Google sign-in and session tokens.

Google itself is never contacted: exchange_google_code is patched on the
server module.
"""
import pytest

import server
from auth import create_jwt_token, decode_jwt_token, google_auth_url
from config import Config
from errors import Unauthorized

GOOGLE_PROFILE = {
    "id": "google-account-42",
    "email": "carol@example.com",
    "name": "Carol Example",
    "picture": "https://example.com/carol.png",
}


@pytest.fixture
def google_profile(monkeypatch):
    profile = dict(GOOGLE_PROFILE)
    monkeypatch.setattr(server, "exchange_google_code", lambda code, redirect_uri=None: dict(profile))
    return profile


def test_token_round_trip():
    payload = decode_jwt_token(create_jwt_token("user-1", "dave@example.com"))
    assert payload["sub"] == "user-1"
    assert payload["email"] == "dave@example.com"


def test_expired_token():
    class ExpiredConfig(Config):
        JWT_EXPIRATION_HOURS = -1

    token = create_jwt_token("user-1", "dave@example.com", config=ExpiredConfig)
    with pytest.raises(Unauthorized) as exc_info:
        decode_jwt_token(token)
    assert exc_info.value.message == "Token has expired"


def test_token_signed_with_other_secret():
    class OtherSecret(Config):
        JWT_SECRET = "someone-else"

    with pytest.raises(Unauthorized) as exc_info:
        decode_jwt_token(create_jwt_token("user-1", "dave@example.com", config=OtherSecret))
    assert exc_info.value.message == "Invalid token"


def test_google_url(monkeypatch):
    monkeypatch.setattr(Config, "GOOGLE_CLIENT_ID", "client-123")
    url = google_auth_url("http://localhost:3000/callback")
    assert url.startswith("https://accounts.google.com/o/oauth2/v2/auth?")
    assert "client_id=client-123" in url
    assert "scope=openid+email+profile" in url


def test_google_url_unconfigured(client, monkeypatch):
    monkeypatch.setattr(Config, "GOOGLE_CLIENT_ID", None)
    response = client.get("/api/auth/google/url")
    assert response.status_code == 500
    assert response.json() == {"error": "Google OAuth not configured"}


def test_google_sign_in_creates_user(client, google_profile):
    response = client.post("/api/auth/google", json={"code": "auth-code"})

    assert response.status_code == 200
    body = response.json()
    assert body["user"]["email"] == "carol@example.com"
    assert body["user"]["name"] == "Carol Example"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
    assert me.status_code == 200
    assert me.json()["id"] == body["user"]["id"]


def test_repeat_sign_in_refreshes_profile(client, store, google_profile):
    first = client.post("/api/auth/google", json={"code": "first"}).json()
    google_profile["name"] = "Carol Renamed"
    second = client.post("/api/auth/google", json={"code": "second"}).json()

    assert second["user"]["id"] == first["user"]["id"]
    assert second["user"]["name"] == "Carol Renamed"
    assert len(store.users) == 1


def test_sign_in_links_existing_email(client, store, user, monkeypatch):
    monkeypatch.setattr(
        server, "exchange_google_code",
        lambda code, redirect_uri=None: {"id": "other-google-id", "email": "Alice@Example.com", "name": "", "picture": None},
    )

    body = client.post("/api/auth/google", json={"code": "x"}).json()

    assert body["user"]["id"] == user.id
    assert body["user"]["name"] == "Alice Example"


def test_sign_in_missing_code(client):
    response = client.post("/api/auth/google", json={})
    assert response.status_code == 400


def test_me_requires_token(client):
    assert client.get("/api/auth/me").status_code == 401
