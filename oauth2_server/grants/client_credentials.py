from __future__ import annotations

import logging
from datetime import timedelta

from oauth2_server.core.errors import OAuthServerError
from oauth2_server.grants.base import AbstractGrant, GrantContext
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.response_types.base import ResponseType

logger = logging.getLogger(__name__)


class ClientCredentialsGrant(AbstractGrant):
    """Machine-to-machine tokens (RFC 6749 §4.4).

    Only confidential clients qualify, and the token is issued on the
    client's own behalf: no user, no refresh token.
    """

    identifier = "client_credentials"

    def __init__(self, context: GrantContext) -> None:
        super().__init__(context)

    def respond_to_access_token_request(
        self,
        request: ServerRequest,
        response_type: ResponseType,
        access_token_ttl: timedelta,
    ) -> ResponseType:
        client = self.validate_client(request)
        if not client.is_confidential:
            self.log_rejected(client.identifier, "public client")
            raise OAuthServerError.invalid_client()

        scopes = self.validate_scopes(request.body_param("scope"), client)
        scopes = self.finalize_scopes(scopes, client)

        access_token = self.issue_access_token(access_token_ttl, client, None, scopes)
        response_type.set_access_token(access_token)

        logger.info(
            "client_credentials token issued  client_id=%s scopes=%s",
            client.identifier,
            " ".join(access_token.scope_identifiers),
            extra={"grant_type": self.identifier, "client_id": client.identifier},
        )
        return response_type
