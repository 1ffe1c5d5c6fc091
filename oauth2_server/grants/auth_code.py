"""Authorization code grant (RFC 6749 §4.1) with optional PKCE (RFC 7636).

Front channel (GET /authorize):
  validate_authorization_request  -> AuthorizationRequest (not approved)
  ... caller authenticates the user and asks for consent ...
  complete_authorization_request  -> 302 to redirect_uri?code=...&state=...

Back channel (POST /token, grant_type=authorization_code):
  1. client_id, redirect_uri, code present             else invalid_request
  2. client authenticates                              else invalid_client
  3. code decrypts to a well-formed payload            else invalid_grant
  4. payload matches client + redirect_uri, not expired,
     not already consumed                              else invalid_grant
  5. code_verifier matches the recorded challenge      else invalid_grant
  6. scopes = the ones recorded on the code (no re-negotiation)
  7. code marked consumed
  8. access token + refresh token minted

The code itself is never stored in the clear: the client holds an
encrypted payload, the repository only tracks the code id for revocation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from datetime import timedelta

from pydantic import ValidationError

from oauth2_server.core.errors import (
    CryptoError,
    OAuthServerError,
    UniqueTokenIdentifierConstraintViolation,
)
from oauth2_server.core.metrics import TOKENS_ISSUED
from oauth2_server.grants.base import (
    DEFAULT_REFRESH_TOKEN_TTL,
    MAX_RANDOM_TOKEN_GENERATION_ATTEMPTS,
    AbstractGrant,
    GrantContext,
    append_to_uri,
    unique_identifier,
)
from oauth2_server.models.auth_code import AuthCode, AuthCodePayload
from oauth2_server.models.authorization_request import AuthorizationRequest
from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.repos.auth_code_repo import AuthCodeRepo
from oauth2_server.repos.refresh_token_repo import RefreshTokenRepo
from oauth2_server.response_types.base import ResponseType
from oauth2_server.response_types.redirect import RedirectResponseType
from oauth2_server.services import pkce_service

logger = logging.getLogger(__name__)


class AuthCodeGrant(AbstractGrant):
    identifier = "authorization_code"

    def __init__(
        self,
        context: GrantContext,
        auth_code_repo: AuthCodeRepo,
        refresh_token_repo: RefreshTokenRepo,
        auth_code_ttl: timedelta,
        *,
        refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL,
        require_code_challenge: bool = False,
    ) -> None:
        super().__init__(
            context,
            refresh_token_repo=refresh_token_repo,
            refresh_token_ttl=refresh_token_ttl,
        )
        if auth_code_ttl <= timedelta(0):
            raise ValueError("auth_code_ttl must be positive")
        self._auth_code_repo = auth_code_repo
        self._auth_code_ttl = auth_code_ttl
        self._require_code_challenge = require_code_challenge

    # ========================== token endpoint ===========================

    def respond_to_access_token_request(
        self,
        request: ServerRequest,
        response_type: ResponseType,
        access_token_ttl: timedelta,
    ) -> ResponseType:
        # --- 1. Required parameters ---
        client_id, _, _ = self.client_credentials(request)
        if not client_id:
            raise OAuthServerError.invalid_request("client_id")
        redirect_uri = request.body_param("redirect_uri")
        if not redirect_uri:
            raise OAuthServerError.invalid_request("redirect_uri")
        encrypted_code = request.body_param("code")
        if not encrypted_code:
            raise OAuthServerError.invalid_request("code")

        # --- 2. Client authentication ---
        client = self.validate_client(request)

        # --- 3. Decrypt the code ---
        try:
            payload = AuthCodePayload.model_validate_json(
                self._context.signer.decrypt(encrypted_code)
            )
        except CryptoError:
            self.log_rejected(client.identifier, "code does not decrypt")
            raise OAuthServerError.invalid_grant("Cannot decrypt the authorization code") from None
        except ValidationError:
            self.log_rejected(client.identifier, "code payload malformed")
            raise OAuthServerError.invalid_grant("Authorization code payload is malformed") from None

        # --- 4. Bound to this client and redirect URI, live, unused ---
        if payload.client_id != client.identifier:
            self.log_rejected(client.identifier, "code issued to another client")
            raise OAuthServerError.invalid_grant("Authorization code was not issued to this client")
        if payload.redirect_uri != redirect_uri:
            self.log_rejected(client.identifier, "redirect_uri mismatch")
            raise OAuthServerError.invalid_grant("Invalid redirect URI")
        if payload.expire_time < int(time.time()):
            self.log_rejected(client.identifier, "code expired")
            raise OAuthServerError.invalid_grant("Authorization code has expired")
        if self._auth_code_repo.is_auth_code_revoked(payload.auth_code_id):
            # A replayed code can mean it was intercepted.
            self.log_rejected(client.identifier, "code already used (replay attempt)")
            raise OAuthServerError.invalid_grant("Authorization code has been revoked")

        # --- 5. PKCE ---
        if payload.code_challenge is not None:
            code_verifier = request.body_param("code_verifier")
            method = payload.code_challenge_method or "plain"
            if not code_verifier or not pkce_service.verify_code_challenge(
                code_verifier, payload.code_challenge, method
            ):
                self.log_rejected(client.identifier, "PKCE verification failed")
                raise OAuthServerError.invalid_grant("Failed to verify `code_verifier`.")

        # --- 6. Scopes recorded on the code, verbatim ---
        user_id = str(payload.user_id) if payload.user_id is not None else None
        scopes = [
            self._context.scope_repo.get_scope_entity_by_identifier(identifier) or Scope(identifier)
            for identifier in payload.scopes
        ]
        scopes = self.finalize_scopes(scopes, client, user_id)

        # --- 7. Single use ---
        self._auth_code_repo.revoke_auth_code(payload.auth_code_id)

        # --- 8. Mint ---
        access_token = self.issue_access_token(access_token_ttl, client, user_id, scopes)
        response_type.set_access_token(access_token)
        refresh_token = self.issue_refresh_token(access_token)
        if refresh_token is not None:
            response_type.set_refresh_token(refresh_token)

        logger.info(
            "authorization_code exchanged  client_id=%s user=%s",
            client.identifier,
            user_id,
            extra={"grant_type": self.identifier, "client_id": client.identifier},
        )
        return response_type

    # ========================= authorize endpoint ========================

    def can_respond_to_authorization_request(self, request: ServerRequest) -> bool:
        return request.query_param("response_type") == "code"

    def validate_authorization_request(self, request: ServerRequest) -> AuthorizationRequest:
        auth_request = self.build_authorization_request(request)

        code_challenge = request.query_param("code_challenge")
        if code_challenge is not None:
            method = request.query_param("code_challenge_method") or "plain"
            if method not in pkce_service.SUPPORTED_METHODS:
                raise OAuthServerError.invalid_request(
                    "code_challenge_method", "Code challenge method must be `plain` or `S256`"
                )
            if not pkce_service.is_well_formed(code_challenge):
                raise OAuthServerError.invalid_request(
                    "code_challenge", "Code challenge must follow the specifications of RFC-7636."
                )
            auth_request.code_challenge = code_challenge
            auth_request.code_challenge_method = method
        elif self._require_code_challenge:
            raise OAuthServerError.invalid_request("code_challenge")

        return auth_request

    def complete_authorization_request(
        self, auth_request: AuthorizationRequest, access_token_ttl: timedelta
    ) -> ResponseType:
        if auth_request.user is None:
            raise ValueError("A user must be set on the AuthorizationRequest before completing it")

        redirect_uri = auth_request.effective_redirect_uri
        if redirect_uri is None:
            raise OAuthServerError.invalid_request("redirect_uri")

        if not auth_request.approved:
            logger.info(
                "Authorization denied by user  client_id=%s",
                auth_request.client.identifier,
                extra={"grant_type": self.identifier, "client_id": auth_request.client.identifier},
            )
            raise OAuthServerError.access_denied(
                "The user denied the request", redirect_uri, auth_request.state
            )

        user_id = auth_request.user.identifier
        scopes = self.finalize_scopes(auth_request.scopes, auth_request.client, user_id)
        auth_code = self._issue_auth_code(
            auth_request.client,
            user_id,
            redirect_uri,
            scopes,
            auth_request.code_challenge,
            auth_request.code_challenge_method,
        )
        payload = AuthCodePayload.from_code(auth_code)

        params = {"code": self._context.signer.encrypt(payload.model_dump_json())}
        if auth_request.state is not None:
            params["state"] = auth_request.state
        return RedirectResponseType(append_to_uri(redirect_uri, params))

    # ------------------------------------------------------------------

    def _issue_auth_code(
        self,
        client: Client,
        user_id: str,
        redirect_uri: str,
        scopes: list[Scope],
        code_challenge: str | None,
        code_challenge_method: str | None,
    ) -> AuthCode:
        code = self._auth_code_repo.get_new_auth_code()
        expires_at = int(time.time()) + int(self._auth_code_ttl.total_seconds())
        for _ in range(MAX_RANDOM_TOKEN_GENERATION_ATTEMPTS):
            candidate = replace(
                code,
                client=client,
                user_id=user_id,
                redirect_uri=redirect_uri,
                scopes=tuple(scopes),
                code_challenge=code_challenge,
                code_challenge_method=code_challenge_method,
                identifier=unique_identifier(),
                expires_at=expires_at,
            )
            try:
                self._auth_code_repo.persist_new_auth_code(candidate)
            except UniqueTokenIdentifierConstraintViolation:
                logger.warning("Auth code identifier collision, retrying")
                continue
            TOKENS_ISSUED.labels(grant_type=self.identifier, token_type="auth_code").inc()
            return candidate
        raise OAuthServerError.server_error("Could not generate a unique authorization code identifier")

