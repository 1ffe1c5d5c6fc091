"""AuthorizationServer: routes inbound requests to the enabled grants.

The server owns the signer and an ordered mapping of enabled grants keyed
by grant identifier.  It does no protocol work itself:

  token endpoint      -> first grant whose can_respond_to_access_token_request
                         is true, else unsupported_grant_type
  authorize endpoint  -> first grant whose can_respond_to_authorization_request
                         is true, else unsupported_grant_type
  completion          -> the grant named by AuthorizationRequest.grant_type_id

Grant errors are counted and re-raised; turning them into HTTP responses
is the caller's job (see api/oauth.py).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from starlette.responses import Response

from oauth2_server.core.errors import OAuthServerError
from oauth2_server.core.metrics import GRANT_ERRORS
from oauth2_server.grants.base import Grant, GrantContext
from oauth2_server.models.authorization_request import AuthorizationRequest
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.repos.access_token_repo import AccessTokenRepo
from oauth2_server.repos.client_repo import ClientRepo
from oauth2_server.repos.scope_repo import ScopeRepo
from oauth2_server.response_types.base import ResponseType
from oauth2_server.response_types.bearer import BearerTokenResponse
from oauth2_server.services.crypto_signer import CryptoSigner

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_TOKEN_TTL = timedelta(hours=1)


class AuthorizationServer:
    def __init__(
        self,
        *,
        client_repo: ClientRepo,
        access_token_repo: AccessTokenRepo,
        scope_repo: ScopeRepo,
        signer: CryptoSigner,
        default_scope: str = "",
        response_type_factory: Callable[[CryptoSigner], ResponseType] | None = None,
    ) -> None:
        self._client_repo = client_repo
        self._access_token_repo = access_token_repo
        self._scope_repo = scope_repo
        self._signer = signer
        self._default_scope = default_scope
        self._response_type_factory = response_type_factory or BearerTokenResponse
        self._grants: dict[str, Grant] = {}
        self._access_token_ttls: dict[str, timedelta] = {}

    def grant_context(self) -> GrantContext:
        """What a grant needs from the server, handed over at construction."""
        return GrantContext(
            client_repo=self._client_repo,
            scope_repo=self._scope_repo,
            access_token_repo=self._access_token_repo,
            signer=self._signer,
            default_scope=self._default_scope,
        )

    def enable_grant_type(
        self, grant: Grant, access_token_ttl: timedelta = DEFAULT_ACCESS_TOKEN_TTL
    ) -> None:
        if access_token_ttl <= timedelta(0):
            raise ValueError("access_token_ttl must be positive")
        identifier = grant.get_identifier()
        self._grants[identifier] = grant
        self._access_token_ttls[identifier] = access_token_ttl
        logger.info(
            "Grant enabled  grant=%s access_token_ttl=%ss",
            identifier,
            int(access_token_ttl.total_seconds()),
        )

    @property
    def enabled_grant_types(self) -> list[str]:
        return list(self._grants)

    def get_response_type(self) -> ResponseType:
        return self._response_type_factory(self._signer)

    # ========================== token endpoint ===========================

    def respond_to_access_token_request(
        self, request: ServerRequest, response: Response | None = None
    ) -> Response:
        grant = next(
            (g for g in self._grants.values() if g.can_respond_to_access_token_request(request)),
            None,
        )
        if grant is None:
            logger.warning(
                "No enabled grant for grant_type=%s",
                request.body_param("grant_type"),
                extra={"error_type": "unsupported_grant_type"},
            )
            error = OAuthServerError.unsupported_grant_type()
            self._record_error("-", error)
            raise error

        identifier = grant.get_identifier()
        try:
            response_type = grant.respond_to_access_token_request(
                request, self.get_response_type(), self._access_token_ttls[identifier]
            )
        except OAuthServerError as exc:
            self._record_error(identifier, exc)
            raise

        logger.info("Token request served  grant=%s", identifier, extra={"grant_type": identifier})
        return response_type.generate_http_response(response)

    # ========================= authorize endpoint ========================

    def validate_authorization_request(self, request: ServerRequest) -> AuthorizationRequest:
        grant = next(
            (g for g in self._grants.values() if g.can_respond_to_authorization_request(request)),
            None,
        )
        if grant is None:
            logger.warning(
                "No enabled grant for response_type=%s",
                request.query_param("response_type"),
                extra={"error_type": "unsupported_grant_type"},
            )
            error = OAuthServerError.unsupported_grant_type()
            self._record_error("-", error)
            raise error

        identifier = grant.get_identifier()
        try:
            auth_request = grant.validate_authorization_request(request)
        except OAuthServerError as exc:
            self._record_error(identifier, exc)
            raise

        logger.info(
            "Authorization request validated  grant=%s client_id=%s",
            identifier,
            auth_request.client.identifier,
            extra={"grant_type": identifier, "client_id": auth_request.client.identifier},
        )
        return auth_request

    def complete_authorization_request(
        self, auth_request: AuthorizationRequest, response: Response | None = None
    ) -> Response:
        grant = self._grants.get(auth_request.grant_type_id)
        if grant is None:
            error = OAuthServerError.unsupported_grant_type()
            self._record_error(auth_request.grant_type_id, error)
            raise error

        try:
            response_type = grant.complete_authorization_request(
                auth_request, self._access_token_ttls[auth_request.grant_type_id]
            )
        except OAuthServerError as exc:
            self._record_error(auth_request.grant_type_id, exc)
            raise

        return response_type.generate_http_response(response)

    # ------------------------------------------------------------------

    @staticmethod
    def _record_error(grant_type: str, exc: OAuthServerError) -> None:
        GRANT_ERRORS.labels(grant_type=grant_type, error_type=exc.error_type).inc()
