"""Application factory: settings -> logging -> signer -> repos -> grants -> routes."""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import FastAPI

from oauth2_server.api.metrics_endpoint import router as metrics_router
from oauth2_server.api.oauth import oauth_error_handler
from oauth2_server.api.oauth import router as oauth_router
from oauth2_server.authorization_server import AuthorizationServer
from oauth2_server.core.config import SETTINGS, Settings
from oauth2_server.core.errors import OAuthServerError
from oauth2_server.core.logging import setup_logging
from oauth2_server.grants.auth_code import AuthCodeGrant
from oauth2_server.grants.client_credentials import ClientCredentialsGrant
from oauth2_server.grants.implicit import ImplicitGrant
from oauth2_server.grants.password import PasswordGrant
from oauth2_server.grants.refresh_token import RefreshTokenGrant
from oauth2_server.models.user import User
from oauth2_server.repos.access_token_repo import InMemoryAccessTokenRepo
from oauth2_server.repos.auth_code_repo import InMemoryAuthCodeRepo
from oauth2_server.repos.client_repo import InMemoryClientRepo
from oauth2_server.repos.refresh_token_repo import InMemoryRefreshTokenRepo
from oauth2_server.repos.scope_repo import InMemoryScopeRepo
from oauth2_server.repos.user_repo import InMemoryUserRepo
from oauth2_server.services import password_service
from oauth2_server.services.crypto_signer import CryptoSigner, generate_encryption_key

logger = logging.getLogger(__name__)

DEMO_USERNAME = "demo"


def build_signer(settings: Settings) -> CryptoSigner:
    if settings.private_key is None:
        logger.warning("OAUTH_PRIVATE_KEY not set, signing with an ephemeral key")
        return CryptoSigner.ephemeral(encryption_key=settings.encryption_key)

    encryption_key = settings.encryption_key
    if encryption_key is None:
        logger.warning("OAUTH_ENCRYPTION_KEY not set, using an ephemeral encryption key")
        encryption_key = generate_encryption_key()
    return CryptoSigner.from_pem(
        settings.private_key,
        encryption_key,
        public_key=settings.public_key,
        passphrase=settings.private_key_passphrase,
    )


def create_app(settings: Settings = SETTINGS) -> FastAPI:
    setup_logging(settings.log_level, json_format=settings.log_json)

    signer = build_signer(settings)
    client_repo = InMemoryClientRepo()
    scope_repo = InMemoryScopeRepo()
    access_token_repo = InMemoryAccessTokenRepo()
    refresh_token_repo = InMemoryRefreshTokenRepo()
    auth_code_repo = InMemoryAuthCodeRepo()
    user_repo = InMemoryUserRepo()

    server = AuthorizationServer(
        client_repo=client_repo,
        access_token_repo=access_token_repo,
        scope_repo=scope_repo,
        signer=signer,
        default_scope=settings.default_scope,
    )
    context = server.grant_context()
    access_token_ttl = timedelta(seconds=settings.access_token_ttl_sec)
    refresh_token_ttl = timedelta(seconds=settings.refresh_token_ttl_sec)

    server.enable_grant_type(
        AuthCodeGrant(
            context,
            auth_code_repo,
            refresh_token_repo,
            timedelta(seconds=settings.auth_code_ttl_sec),
            refresh_token_ttl=refresh_token_ttl,
            require_code_challenge=settings.require_pkce,
        ),
        access_token_ttl,
    )
    server.enable_grant_type(
        RefreshTokenGrant(context, refresh_token_repo, refresh_token_ttl=refresh_token_ttl),
        access_token_ttl,
    )
    server.enable_grant_type(ClientCredentialsGrant(context), access_token_ttl)
    server.enable_grant_type(
        PasswordGrant(context, user_repo, refresh_token_repo, refresh_token_ttl=refresh_token_ttl),
        access_token_ttl,
    )
    server.enable_grant_type(ImplicitGrant(context), access_token_ttl)

    app = FastAPI(
        title="oauth2-server",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.authorization_server = server
    app.state.client_repo = client_repo
    app.state.scope_repo = scope_repo
    app.state.user_repo = user_repo

    # The /oauth/authorize endpoint auto-approves as this user outside prod.
    if not settings.is_prod:
        demo_user = User.new(
            username=DEMO_USERNAME, password_hash=password_service.hash_password(DEMO_USERNAME)
        )
        user_repo.add(demo_user)
        app.state.demo_user = demo_user

    app.add_exception_handler(OAuthServerError, oauth_error_handler)  # type: ignore[arg-type]
    app.include_router(metrics_router)
    app.include_router(oauth_router)

    logger.info(
        "oauth2-server started  env=%s log_level=%s grants=%s",
        settings.app_env,
        settings.log_level,
        ",".join(server.enabled_grant_types),
    )
    return app
