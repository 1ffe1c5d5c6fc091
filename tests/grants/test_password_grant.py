from __future__ import annotations

import json

import pytest

from oauth2_server.authorization_server import AuthorizationServer
from oauth2_server.core.errors import OAuthServerError
from oauth2_server.grants.base import GrantContext
from oauth2_server.grants.password import PasswordGrant
from oauth2_server.models.refresh_token import RefreshTokenPayload
from oauth2_server.models.user import User
from oauth2_server.repos.refresh_token_repo import InMemoryRefreshTokenRepo
from oauth2_server.repos.user_repo import InMemoryUserRepo
from oauth2_server.services.crypto_signer import CryptoSigner
from tests.conftest import ACCESS_TOKEN_TTL, PASSWORD, USERNAME, token_request


@pytest.fixture
def password_server(
    server: AuthorizationServer,
    context: GrantContext,
    user_repo: InMemoryUserRepo,
    refresh_token_repo: InMemoryRefreshTokenRepo,
) -> AuthorizationServer:
    server.enable_grant_type(PasswordGrant(context, user_repo, refresh_token_repo), ACCESS_TOKEN_TTL)
    return server


def test_issues_tokens_for_valid_credentials(
    password_server: AuthorizationServer, signer: CryptoSigner, user: User
) -> None:
    response = password_server.respond_to_access_token_request(
        token_request(grant_type="password", username=USERNAME, password=PASSWORD, scope="foo bar")
    )
    assert response.status_code == 200
    body = json.loads(response.body)

    claims = signer.decode_jwt(body["access_token"])
    assert claims["sub"] == user.identifier
    assert claims["scopes"] == ["foo", "bar"]

    refresh = RefreshTokenPayload.model_validate_json(signer.decrypt(body["refresh_token"]))
    assert refresh.user_id == user.identifier
    assert refresh.access_token_id == claims["jti"]


def test_wrong_password_is_invalid_credentials(password_server: AuthorizationServer) -> None:
    with pytest.raises(OAuthServerError) as exc_info:
        password_server.respond_to_access_token_request(
            token_request(grant_type="password", username=USERNAME, password="nope")
        )
    assert exc_info.value.code == 6
    assert exc_info.value.http_status == 401


def test_unknown_user_is_invalid_credentials(password_server: AuthorizationServer) -> None:
    with pytest.raises(OAuthServerError) as exc_info:
        password_server.respond_to_access_token_request(
            token_request(grant_type="password", username="ghost", password=PASSWORD)
        )
    assert exc_info.value.code == 6


@pytest.mark.parametrize("missing", ["username", "password"])
def test_missing_credential_is_invalid_request(
    password_server: AuthorizationServer, missing: str
) -> None:
    params = {"username": USERNAME, "password": PASSWORD}
    del params[missing]
    with pytest.raises(OAuthServerError) as exc_info:
        password_server.respond_to_access_token_request(token_request(grant_type="password", **params))
    assert exc_info.value.code == 3
    assert missing in (exc_info.value.hint or "")
