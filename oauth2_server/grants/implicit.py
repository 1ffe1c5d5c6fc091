"""Implicit grant (RFC 6749 §4.2).

Front channel only: the access token is handed to the user agent in the
redirect URI fragment, so it never reaches the client's server logs.  No
refresh token is ever issued, and the token endpoint does not accept this
grant.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from oauth2_server.core.errors import OAuthServerError
from oauth2_server.grants.base import AbstractGrant, append_to_uri
from oauth2_server.models.authorization_request import AuthorizationRequest
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.response_types.base import ResponseType
from oauth2_server.response_types.redirect import RedirectResponseType

logger = logging.getLogger(__name__)


class ImplicitGrant(AbstractGrant):
    identifier = "implicit"

    def can_respond_to_access_token_request(self, request: ServerRequest) -> bool:
        return False

    def can_respond_to_authorization_request(self, request: ServerRequest) -> bool:
        return request.query_param("response_type") == "token"

    def validate_authorization_request(self, request: ServerRequest) -> AuthorizationRequest:
        try:
            return self.build_authorization_request(request)
        except OAuthServerError as exc:
            exc.use_fragment = True
            raise

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
            error = OAuthServerError.access_denied(
                "The user denied the request", redirect_uri, auth_request.state
            )
            error.use_fragment = True
            raise error

        user_id = auth_request.user.identifier
        scopes = self.finalize_scopes(auth_request.scopes, auth_request.client, user_id)
        access_token = self.issue_access_token(access_token_ttl, auth_request.client, user_id, scopes)

        params = {
            "access_token": self._context.signer.encode_jwt(access_token.to_jwt_claims()),
            "token_type": "Bearer",
            "expires_in": str(int(access_token_ttl.total_seconds())),
        }
        if auth_request.state is not None:
            params["state"] = auth_request.state

        logger.info(
            "implicit token issued  client_id=%s user=%s",
            auth_request.client.identifier,
            user_id,
            extra={"grant_type": self.identifier, "client_id": auth_request.client.identifier},
        )
        return RedirectResponseType(append_to_uri(redirect_uri, params, fragment=True))
