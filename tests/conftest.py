from __future__ import annotations

import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import oauth2_server` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from oauth2_server.authorization_server import AuthorizationServer  # noqa: E402
from oauth2_server.grants.base import GrantContext  # noqa: E402
from oauth2_server.models.client import Client  # noqa: E402
from oauth2_server.models.scope import Scope  # noqa: E402
from oauth2_server.models.server_request import ServerRequest  # noqa: E402
from oauth2_server.models.user import User  # noqa: E402
from oauth2_server.repos.access_token_repo import InMemoryAccessTokenRepo  # noqa: E402
from oauth2_server.repos.auth_code_repo import InMemoryAuthCodeRepo  # noqa: E402
from oauth2_server.repos.client_repo import InMemoryClientRepo  # noqa: E402
from oauth2_server.repos.refresh_token_repo import InMemoryRefreshTokenRepo  # noqa: E402
from oauth2_server.repos.scope_repo import InMemoryScopeRepo  # noqa: E402
from oauth2_server.repos.user_repo import InMemoryUserRepo  # noqa: E402
from oauth2_server.services import password_service  # noqa: E402
from oauth2_server.services.crypto_signer import CryptoSigner  # noqa: E402

CLIENT_ID = "foo"
CLIENT_SECRET = "bar"
REDIRECT_URI = "http://foo/bar"
PUBLIC_CLIENT_ID = "public-app"
PUBLIC_REDIRECT_URI = "http://public-app/callback"
USERNAME = "alex"
PASSWORD = "whisper-quietly"

ACCESS_TOKEN_TTL = timedelta(hours=1)


# ---- key material (generated once; RSA keygen is slow) ----


@pytest.fixture(scope="session")
def signer() -> CryptoSigner:
    return CryptoSigner.ephemeral("ES256")


@pytest.fixture(scope="session")
def rsa_signer() -> CryptoSigner:
    return CryptoSigner.ephemeral("RS256")


@pytest.fixture(scope="session")
def client_secret_hash() -> str:
    return password_service.hash_password(CLIENT_SECRET)


@pytest.fixture(scope="session")
def user_password_hash() -> str:
    return password_service.hash_password(PASSWORD)


# ---- fresh repositories per test ----


@pytest.fixture
def client_repo(client_secret_hash: str) -> InMemoryClientRepo:
    repo = InMemoryClientRepo()
    repo.register(
        Client.new(
            identifier=CLIENT_ID,
            name="Foo Client",
            redirect_uris=(REDIRECT_URI,),
            secret_hash=client_secret_hash,
        )
    )
    repo.register(
        Client.new(
            identifier=PUBLIC_CLIENT_ID,
            name="Public App",
            redirect_uris=(PUBLIC_REDIRECT_URI,),
        )
    )
    return repo


@pytest.fixture
def scope_repo() -> InMemoryScopeRepo:
    repo = InMemoryScopeRepo()
    for identifier in ("foo", "bar", "basic"):
        repo.add(Scope(identifier))
    return repo


@pytest.fixture
def access_token_repo() -> InMemoryAccessTokenRepo:
    return InMemoryAccessTokenRepo()


@pytest.fixture
def refresh_token_repo() -> InMemoryRefreshTokenRepo:
    return InMemoryRefreshTokenRepo()


@pytest.fixture
def auth_code_repo() -> InMemoryAuthCodeRepo:
    return InMemoryAuthCodeRepo()


@pytest.fixture
def user(user_password_hash: str) -> User:
    return User.new(username=USERNAME, password_hash=user_password_hash)


@pytest.fixture
def user_repo(user: User) -> InMemoryUserRepo:
    repo = InMemoryUserRepo()
    repo.add(user)
    return repo


# ---- server wiring ----


@pytest.fixture
def server(
    client_repo: InMemoryClientRepo,
    access_token_repo: InMemoryAccessTokenRepo,
    scope_repo: InMemoryScopeRepo,
    signer: CryptoSigner,
) -> AuthorizationServer:
    return AuthorizationServer(
        client_repo=client_repo,
        access_token_repo=access_token_repo,
        scope_repo=scope_repo,
        signer=signer,
        default_scope="basic",
    )


@pytest.fixture
def context(server: AuthorizationServer) -> GrantContext:
    return server.grant_context()


def token_request(**body: str) -> ServerRequest:
    """A token-endpoint request authenticating as the seeded confidential client."""
    return ServerRequest(body={"client_id": CLIENT_ID, "client_secret": CLIENT_SECRET, **body})


def authorize_request(**query: str) -> ServerRequest:
    return ServerRequest(query=query)
