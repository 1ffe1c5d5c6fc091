"""The shape every grant shares, and the helpers the built-in grants reuse.

A grant is a small state machine:

    validate request -> authenticate client -> resolve scopes
        -> mint tokens -> populate the response type

Each step raises OAuthServerError on the first violated precondition, and
nothing is minted or persisted until every check has passed.  The server
only talks to grants through the `Grant` protocol; `AbstractGrant` is a
convenience base, not a requirement.

Grants are configured once, at construction, through a `GrantContext`
the server hands out (`AuthorizationServer.grant_context()`), and hold no
per-request state.
"""

from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import ClassVar, Protocol
from urllib.parse import urlencode

from oauth2_server.core.errors import OAuthServerError, UniqueTokenIdentifierConstraintViolation
from oauth2_server.core.metrics import TOKENS_ISSUED
from oauth2_server.models.access_token import AccessToken
from oauth2_server.models.authorization_request import AuthorizationRequest
from oauth2_server.models.client import Client
from oauth2_server.models.refresh_token import RefreshToken
from oauth2_server.models.scope import Scope
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.repos.access_token_repo import AccessTokenRepo
from oauth2_server.repos.client_repo import ClientRepo
from oauth2_server.repos.refresh_token_repo import RefreshTokenRepo
from oauth2_server.repos.scope_repo import ScopeRepo
from oauth2_server.response_types.base import ResponseType
from oauth2_server.services.crypto_signer import CryptoSigner

logger = logging.getLogger(__name__)

SCOPE_DELIMITER = " "
MAX_RANDOM_TOKEN_GENERATION_ATTEMPTS = 10
DEFAULT_REFRESH_TOKEN_TTL = timedelta(days=30)


@dataclass(frozen=True)
class GrantContext:
    client_repo: ClientRepo
    scope_repo: ScopeRepo
    access_token_repo: AccessTokenRepo
    signer: CryptoSigner
    default_scope: str = ""


class Grant(Protocol):
    def get_identifier(self) -> str: ...
    def can_respond_to_access_token_request(self, request: ServerRequest) -> bool: ...

    def respond_to_access_token_request(
        self,
        request: ServerRequest,
        response_type: ResponseType,
        access_token_ttl: timedelta,
    ) -> ResponseType: ...

    def can_respond_to_authorization_request(self, request: ServerRequest) -> bool: ...
    def validate_authorization_request(self, request: ServerRequest) -> AuthorizationRequest: ...
    def complete_authorization_request(
        self, auth_request: AuthorizationRequest, access_token_ttl: timedelta
    ) -> ResponseType: ...


def unique_identifier() -> str:
    # 40 random bytes, hex: non-enumerable and safe in URLs and JSON.
    return secrets.token_hex(40)


def append_to_uri(uri: str, params: dict[str, str], *, fragment: bool = False) -> str:
    if fragment:
        return f"{uri}#{urlencode(params)}"
    separator = "&" if "?" in uri else "?"
    return f"{uri}{separator}{urlencode(params)}"


class AbstractGrant:
    identifier: ClassVar[str]

    def __init__(
        self,
        context: GrantContext,
        *,
        refresh_token_repo: RefreshTokenRepo | None = None,
        refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL,
    ) -> None:
        if refresh_token_ttl <= timedelta(0):
            raise ValueError("refresh_token_ttl must be positive")
        self._context = context
        self._refresh_token_repo = refresh_token_repo
        self._refresh_token_ttl = refresh_token_ttl

    # ------------------------------------------------------------------
    # Grant protocol defaults
    # ------------------------------------------------------------------

    def get_identifier(self) -> str:
        return self.identifier

    def can_respond_to_access_token_request(self, request: ServerRequest) -> bool:
        return request.body_param("grant_type") == self.get_identifier()

    def respond_to_access_token_request(
        self,
        request: ServerRequest,
        response_type: ResponseType,
        access_token_ttl: timedelta,
    ) -> ResponseType:
        raise NotImplementedError(f"{self.identifier} grant cannot respond to an access token request")

    def can_respond_to_authorization_request(self, request: ServerRequest) -> bool:
        return False

    def validate_authorization_request(self, request: ServerRequest) -> AuthorizationRequest:
        raise NotImplementedError(f"{self.identifier} grant cannot validate an authorization request")

    def complete_authorization_request(
        self, auth_request: AuthorizationRequest, access_token_ttl: timedelta
    ) -> ResponseType:
        raise NotImplementedError(f"{self.identifier} grant cannot complete an authorization request")

    # ------------------------------------------------------------------
    # Client authentication
    # ------------------------------------------------------------------

    def client_credentials(self, request: ServerRequest) -> tuple[str | None, str | None, bool]:
        """(client_id, client_secret, used_basic_auth); body params win over Basic."""
        basic_id, basic_secret = request.basic_auth_credentials()
        client_id = request.body_param("client_id") or basic_id
        client_secret = request.body_param("client_secret") or basic_secret
        used_basic = basic_id is not None and request.body_param("client_id") is None
        return client_id, client_secret, used_basic

    def validate_client(self, request: ServerRequest) -> Client:
        client_id, client_secret, used_basic = self.client_credentials(request)
        if not client_id:
            raise OAuthServerError.invalid_request("client_id")

        client_repo = self._context.client_repo
        if client_secret is None:
            # Confidential clients must present a secret; tell them which
            # parameter is missing instead of a bare authentication failure.
            known = client_repo.get_client_entity(
                client_id, self.identifier, None, must_validate_secret=False
            )
            if known is not None and known.is_confidential:
                logger.warning(
                    "Confidential client sent no secret  grant=%s client_id=%s",
                    self.identifier,
                    client_id,
                    extra={"grant_type": self.identifier, "client_id": client_id},
                )
                raise OAuthServerError.invalid_request("client_secret")

        client = client_repo.get_client_entity(
            client_id, self.identifier, client_secret, must_validate_secret=True
        )
        if client is None:
            logger.warning(
                "Client authentication failed  grant=%s client_id=%s",
                self.identifier,
                client_id,
                extra={"grant_type": self.identifier, "client_id": client_id},
            )
            error = OAuthServerError.invalid_client()
            error.basic_auth_used = used_basic
            raise error

        # A redirect_uri, when sent, must be one the client registered.
        redirect_uri = request.body_param("redirect_uri")
        if redirect_uri is not None and not client.has_redirect_uri(redirect_uri):
            logger.warning("Unregistered redirect_uri  client_id=%s", client_id)
            raise OAuthServerError.invalid_client()

        return client

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    def validate_scopes(
        self,
        scope_param: str | None,
        client: Client,
        redirect_uri: str | None = None,
    ) -> list[Scope]:
        """Resolve a space-delimited scope string into Scope entities.

        `None` means the parameter was absent and the context's default
        scope applies.  Unknown scopes and scopes the client may not
        request both fail with invalid_scope.
        """
        raw = self._context.default_scope if scope_param is None else scope_param
        scopes: list[Scope] = []
        seen: set[str] = set()
        for identifier in raw.split(SCOPE_DELIMITER):
            if not identifier or identifier in seen:
                continue
            scope = self._context.scope_repo.get_scope_entity_by_identifier(identifier)
            if scope is None or not client.allows_scope(identifier):
                logger.warning(
                    "Scope rejected  grant=%s client_id=%s scope=%s",
                    self.identifier,
                    client.identifier,
                    identifier,
                    extra={"grant_type": self.identifier, "client_id": client.identifier},
                )
                raise OAuthServerError.invalid_scope(identifier, redirect_uri)
            seen.add(identifier)
            scopes.append(scope)
        return scopes

    def finalize_scopes(
        self, scopes: list[Scope], client: Client, user_id: str | None = None
    ) -> list[Scope]:
        return self._context.scope_repo.finalize_scopes(scopes, self.identifier, client, user_id)

    # ------------------------------------------------------------------
    # Front channel (authorize endpoint)
    # ------------------------------------------------------------------

    def build_authorization_request(self, request: ServerRequest) -> AuthorizationRequest:
        """Validate client, redirect URI, scopes and state from the query string."""
        client_id = request.query_param("client_id")
        if not client_id:
            raise OAuthServerError.invalid_request("client_id")

        client = self._context.client_repo.get_client_entity(
            client_id, self.identifier, None, must_validate_secret=False
        )
        if client is None:
            logger.warning(
                "Authorization request for unknown client  client_id=%s",
                client_id,
                extra={"grant_type": self.identifier, "client_id": client_id},
            )
            raise OAuthServerError.invalid_client()

        # Never redirect anywhere before the URI is known to be registered.
        redirect_uri = request.query_param("redirect_uri")
        if redirect_uri is not None and not client.has_redirect_uri(redirect_uri):
            logger.warning("Unregistered redirect_uri  client_id=%s", client_id)
            raise OAuthServerError.invalid_client()
        effective_redirect_uri = redirect_uri or client.default_redirect_uri
        if effective_redirect_uri is None:
            raise OAuthServerError.invalid_request(
                "redirect_uri", "Client has no registered redirect URI"
            )

        scopes = self.validate_scopes(request.query_param("scope"), client, effective_redirect_uri)

        return AuthorizationRequest(
            grant_type_id=self.identifier,
            client=client,
            scopes=scopes,
            redirect_uri=redirect_uri,
            state=request.query_param("state"),
        )

    # ------------------------------------------------------------------
    # Minting
    # ------------------------------------------------------------------

    def issue_access_token(
        self,
        ttl: timedelta,
        client: Client,
        user_id: str | None,
        scopes: list[Scope],
    ) -> AccessToken:
        repo = self._context.access_token_repo
        token = repo.get_new_token(client, scopes, user_id)
        now = int(time.time())
        for _ in range(MAX_RANDOM_TOKEN_GENERATION_ATTEMPTS):
            candidate = replace(
                token,
                identifier=unique_identifier(),
                issued_at=now,
                expires_at=now + int(ttl.total_seconds()),
            )
            try:
                repo.persist_new_access_token(candidate)
            except UniqueTokenIdentifierConstraintViolation:
                logger.warning("Access token identifier collision, retrying")
                continue
            TOKENS_ISSUED.labels(grant_type=self.identifier, token_type="access_token").inc()
            return candidate
        raise OAuthServerError.server_error("Could not generate a unique access token identifier")

    def issue_refresh_token(self, access_token: AccessToken) -> RefreshToken | None:
        if self._refresh_token_repo is None:
            return None
        token = self._refresh_token_repo.get_new_refresh_token()
        if token is None:
            return None
        now = int(time.time())
        for _ in range(MAX_RANDOM_TOKEN_GENERATION_ATTEMPTS):
            candidate = replace(
                token,
                access_token=access_token,
                identifier=unique_identifier(),
                expires_at=now + int(self._refresh_token_ttl.total_seconds()),
            )
            try:
                self._refresh_token_repo.persist_new_refresh_token(candidate)
            except UniqueTokenIdentifierConstraintViolation:
                logger.warning("Refresh token identifier collision, retrying")
                continue
            TOKENS_ISSUED.labels(grant_type=self.identifier, token_type="refresh_token").inc()
            return candidate
        raise OAuthServerError.server_error("Could not generate a unique refresh token identifier")

    def log_rejected(self, client_id: str | None, reason: str) -> None:
        logger.warning(
            "%s rejected: %s  client_id=%s",
            self.identifier,
            reason,
            client_id,
            extra={"grant_type": self.identifier, "client_id": client_id},
        )
