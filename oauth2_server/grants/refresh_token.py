"""Refresh token grant (RFC 6749 §6) with rotation.

  1. client_id and refresh_token present           else invalid_request (3)
  2. client authenticates                          else invalid_client (4)
  3. refresh_token decrypts to a valid payload     else invalid refresh token (8)
  4. payload bound to this client, not expired,
     not revoked                                   else invalid refresh token (8)
  5. requested scopes are a subset of the original else invalid_scope (5)
  6. old access token and old refresh token revoked
  7. new access token + refresh token minted

A refresh token is usable exactly once.  Replaying a rotated token fails
at step 4, which is how a stolen-and-replayed token surfaces.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta

from pydantic import ValidationError

from oauth2_server.core.errors import CryptoError, OAuthServerError
from oauth2_server.grants.base import (
    DEFAULT_REFRESH_TOKEN_TTL,
    SCOPE_DELIMITER,
    AbstractGrant,
    GrantContext,
)
from oauth2_server.models.client import Client
from oauth2_server.models.refresh_token import RefreshTokenPayload
from oauth2_server.models.scope import Scope
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.repos.refresh_token_repo import RefreshTokenRepo
from oauth2_server.response_types.base import ResponseType

logger = logging.getLogger(__name__)


class RefreshTokenGrant(AbstractGrant):
    identifier = "refresh_token"

    def __init__(
        self,
        context: GrantContext,
        refresh_token_repo: RefreshTokenRepo,
        *,
        refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL,
    ) -> None:
        super().__init__(
            context,
            refresh_token_repo=refresh_token_repo,
            refresh_token_ttl=refresh_token_ttl,
        )
        self._repo = refresh_token_repo

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
        encrypted_token = request.body_param("refresh_token")
        if not encrypted_token:
            raise OAuthServerError.invalid_request("refresh_token")

        # --- 2. Client authentication ---
        client = self.validate_client(request)

        # --- 3 + 4. Decrypt and check binding, expiry, revocation ---
        payload = self._validate_old_refresh_token(encrypted_token, client)

        # --- 5. Scopes ---
        scopes = self._resolve_scopes(request.body_param("scope"), payload, client)
        user_id = str(payload.user_id) if payload.user_id is not None else None
        scopes = self.finalize_scopes(scopes, client, user_id)

        # --- 6. Rotate: the old pair is dead before the new one exists ---
        self._context.access_token_repo.revoke_access_token(payload.access_token_id)
        self._repo.revoke_refresh_token(payload.refresh_token_id)

        # --- 7. Mint ---
        access_token = self.issue_access_token(access_token_ttl, client, user_id, scopes)
        response_type.set_access_token(access_token)
        refresh_token = self.issue_refresh_token(access_token)
        if refresh_token is not None:
            response_type.set_refresh_token(refresh_token)

        logger.info(
            "Refresh token rotated  client_id=%s user=%s",
            client.identifier,
            user_id,
            extra={"grant_type": self.identifier, "client_id": client.identifier},
        )
        return response_type

    def _validate_old_refresh_token(self, encrypted_token: str, client: Client) -> RefreshTokenPayload:
        try:
            payload = RefreshTokenPayload.model_validate_json(
                self._context.signer.decrypt(encrypted_token)
            )
        except CryptoError:
            self.log_rejected(client.identifier, "refresh token does not decrypt")
            raise OAuthServerError.invalid_refresh_token("Cannot decrypt the refresh token") from None
        except ValidationError:
            self.log_rejected(client.identifier, "refresh token payload malformed")
            raise OAuthServerError.invalid_refresh_token("Refresh token payload is malformed") from None

        if payload.client_id != client.identifier:
            self.log_rejected(client.identifier, "refresh token issued to another client")
            raise OAuthServerError.invalid_refresh_token("Token is not linked to client")
        if payload.expire_time < int(time.time()):
            self.log_rejected(client.identifier, "refresh token expired")
            raise OAuthServerError.invalid_refresh_token("Token has expired")
        if self._repo.is_refresh_token_revoked(payload.refresh_token_id):
            self.log_rejected(client.identifier, "refresh token revoked (possible replay)")
            raise OAuthServerError.invalid_refresh_token("Token has been revoked")

        return payload

    def _resolve_scopes(
        self, scope_param: str | None, payload: RefreshTokenPayload, client: Client
    ) -> list[Scope]:
        original = SCOPE_DELIMITER.join(payload.scopes)
        if scope_param is None:
            return self.validate_scopes(original, client)

        # Scopes can only be narrowed on refresh, never widened.
        requested = self.validate_scopes(scope_param, client)
        for scope in requested:
            if scope.identifier not in payload.scopes:
                self.log_rejected(client.identifier, f"scope {scope.identifier} not originally granted")
                raise OAuthServerError.invalid_scope(scope.identifier)
        return requested
