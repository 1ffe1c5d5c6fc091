"""End-to-end tests through the FastAPI app.

These tests act as the OAuth client by:
  1. Calling GET /oauth/authorize with query params
  2. Extracting `code` from the 302 Location header
  3. Calling POST /oauth/token with the code (and client credentials)
  4. Asserting token issuance / failures on the wire
"""

from __future__ import annotations

import base64
from dataclasses import replace
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from oauth2_server.core.config import Settings, load_settings
from oauth2_server.main import build_signer, create_app
from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope
from oauth2_server.services import crypt_key
from oauth2_server.services.crypto_signer import CryptoSigner, generate_encryption_key
from tests.conftest import CLIENT_ID, CLIENT_SECRET, REDIRECT_URI


@pytest.fixture
def settings(monkeypatch: pytest.MonkeyPatch) -> Settings:
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.delenv("OAUTH_PRIVATE_KEY", raising=False)
    monkeypatch.delenv("OAUTH_ENCRYPTION_KEY", raising=False)
    return load_settings()


def _seed(app: FastAPI, client_secret_hash: str) -> None:
    app.state.client_repo.register(
        Client.new(
            identifier=CLIENT_ID,
            name="Foo Client",
            redirect_uris=(REDIRECT_URI,),
            secret_hash=client_secret_hash,
        )
    )
    for identifier in ("foo", "bar", "basic"):
        app.state.scope_repo.add(Scope(identifier))


@pytest.fixture
def app(settings: Settings, client_secret_hash: str) -> FastAPI:
    app = create_app(settings)
    _seed(app, client_secret_hash)
    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


# ---- POST /oauth/token ----


def test_client_credentials_over_http(client: TestClient) -> None:
    resp = client.post(
        "/oauth/token",
        data={
            "grant_type": "client_credentials",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "scope": "foo",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["cache-control"] == "no-store"
    body = resp.json()
    assert body["token_type"] == "Bearer"
    assert body["access_token"].count(".") == 2
    assert "refresh_token" not in body


def test_unsupported_grant_type_over_http(client: TestClient) -> None:
    resp = client.post("/oauth/token", data={"grant_type": "foo"})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "unsupported_grant_type"
    assert body["error_description"] == body["message"]


def test_bad_basic_credentials_get_challenge(client: TestClient) -> None:
    credentials = base64.b64encode(f"{CLIENT_ID}:wrong".encode()).decode()
    resp = client.post(
        "/oauth/token",
        data={"grant_type": "client_credentials"},
        headers={"Authorization": f"Basic {credentials}"},
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_client"
    assert resp.headers["www-authenticate"] == 'Basic realm="OAuth"'


def test_password_grant_with_demo_user(client: TestClient) -> None:
    resp = client.post(
        "/oauth/token",
        data={
            "grant_type": "password",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "username": "demo",
            "password": "demo",
        },
    )
    assert resp.status_code == 200
    assert "refresh_token" in resp.json()


def test_bad_refresh_token_over_http(client: TestClient) -> None:
    resp = client.post(
        "/oauth/token",
        data={
            "grant_type": "refresh_token",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "refresh_token": "garbage",
        },
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_request"


# ---- GET /oauth/authorize -> POST /oauth/token ----


def test_authorization_code_flow_over_http(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params={
            "response_type": "code",
            "client_id": CLIENT_ID,
            "redirect_uri": REDIRECT_URI,
            "scope": "foo bar",
            "state": "xyz",
        },
        follow_redirects=False,
    )
    assert resp.status_code == 302
    location = urlparse(resp.headers["location"])
    params = parse_qs(location.query)
    assert params["state"] == ["xyz"]
    code = params["code"][0]

    token_data = {
        "grant_type": "authorization_code",
        "client_id": CLIENT_ID,
        "client_secret": CLIENT_SECRET,
        "redirect_uri": REDIRECT_URI,
        "code": code,
    }
    resp = client.post("/oauth/token", data=token_data)
    assert resp.status_code == 200
    tokens = resp.json()

    # Replay of the same code fails.
    resp = client.post("/oauth/token", data=token_data)
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_grant"

    # The refresh token from the exchange rotates.
    resp = client.post(
        "/oauth/token",
        data={
            "grant_type": "refresh_token",
            "client_id": CLIENT_ID,
            "client_secret": CLIENT_SECRET,
            "refresh_token": tokens["refresh_token"],
            "scope": "foo",
        },
    )
    assert resp.status_code == 200
    assert resp.json()["refresh_token"] != tokens["refresh_token"]


def test_implicit_flow_over_http(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params={"response_type": "token", "client_id": CLIENT_ID, "state": "s"},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    fragment = parse_qs(urlparse(resp.headers["location"]).fragment)
    assert fragment["token_type"] == ["Bearer"]
    assert fragment["state"] == ["s"]


def test_authorize_unknown_client_is_json_error(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params={"response_type": "code", "client_id": "nope"},
        follow_redirects=False,
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_client"


def test_authorize_bad_scope_redirects_with_error(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params={"response_type": "code", "client_id": CLIENT_ID, "scope": "foobar"},
        follow_redirects=False,
    )
    assert resp.status_code == 302
    params = parse_qs(urlparse(resp.headers["location"]).query)
    assert params["error"] == ["invalid_scope"]


def test_authorize_unsupported_response_type(client: TestClient) -> None:
    resp = client.get(
        "/oauth/authorize",
        params={"response_type": "id_token", "client_id": CLIENT_ID},
        follow_redirects=False,
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "unsupported_grant_type"


# ---- app wiring ----


def test_metrics_endpoint_exposes_grant_counters(client: TestClient) -> None:
    client.post(
        "/oauth/token",
        data={"grant_type": "client_credentials", "client_id": CLIENT_ID, "client_secret": CLIENT_SECRET},
    )
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "oauth_tokens_issued_total" in resp.text


def test_ephemeral_signer_keeps_configured_encryption_key(settings: Settings) -> None:
    encryption_key = generate_encryption_key()
    ciphertext = CryptoSigner.ephemeral(encryption_key=encryption_key).encrypt("payload")

    signer = build_signer(replace(settings, encryption_key=encryption_key))
    assert signer.decrypt(ciphertext) == "payload"


def test_prod_app_uses_configured_keys_and_has_no_demo_user(
    settings: Settings, client_secret_hash: str
) -> None:
    private = crypt_key.generate_private_key("ES256")
    prod_settings = replace(
        settings,
        app_env="prod",
        private_key=crypt_key.private_key_to_pem(private).decode("ascii"),
        encryption_key=generate_encryption_key(),
    )
    app = create_app(prod_settings)
    _seed(app, client_secret_hash)
    client = TestClient(app)

    assert app.state.authorization_server.grant_context().signer.public_key.public_numbers() == (
        private.public_key().public_numbers()
    )
    resp = client.get(
        "/oauth/authorize",
        params={"response_type": "code", "client_id": CLIENT_ID},
        follow_redirects=False,
    )
    assert resp.status_code == 501
