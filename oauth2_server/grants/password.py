from __future__ import annotations

import logging
from datetime import timedelta

from oauth2_server.core.errors import OAuthServerError
from oauth2_server.grants.base import DEFAULT_REFRESH_TOKEN_TTL, AbstractGrant, GrantContext
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.repos.refresh_token_repo import RefreshTokenRepo
from oauth2_server.repos.user_repo import UserRepo
from oauth2_server.response_types.base import ResponseType

logger = logging.getLogger(__name__)


class PasswordGrant(AbstractGrant):
    """Resource owner password credentials (RFC 6749 §4.3).

    Kept for first-party clients migrating off direct logins.  The client
    still authenticates; the user's credentials go to the UserRepo.
    """

    identifier = "password"

    def __init__(
        self,
        context: GrantContext,
        user_repo: UserRepo,
        refresh_token_repo: RefreshTokenRepo,
        *,
        refresh_token_ttl: timedelta = DEFAULT_REFRESH_TOKEN_TTL,
    ) -> None:
        super().__init__(
            context,
            refresh_token_repo=refresh_token_repo,
            refresh_token_ttl=refresh_token_ttl,
        )
        self._user_repo = user_repo

    def respond_to_access_token_request(
        self,
        request: ServerRequest,
        response_type: ResponseType,
        access_token_ttl: timedelta,
    ) -> ResponseType:
        client = self.validate_client(request)
        scopes = self.validate_scopes(request.body_param("scope"), client)

        username = request.body_param("username")
        if not username:
            raise OAuthServerError.invalid_request("username")
        password = request.body_param("password")
        if not password:
            raise OAuthServerError.invalid_request("password")

        user = self._user_repo.get_user_entity_by_user_credentials(
            username, password, self.identifier, client
        )
        if user is None:
            # Same answer for unknown user and wrong password.
            self.log_rejected(client.identifier, "bad user credentials")
            raise OAuthServerError.invalid_credentials()

        scopes = self.finalize_scopes(scopes, client, user.identifier)

        access_token = self.issue_access_token(access_token_ttl, client, user.identifier, scopes)
        response_type.set_access_token(access_token)
        refresh_token = self.issue_refresh_token(access_token)
        if refresh_token is not None:
            response_type.set_refresh_token(refresh_token)

        logger.info(
            "password grant token issued  client_id=%s user=%s",
            client.identifier,
            user.identifier,
            extra={"grant_type": self.identifier, "client_id": client.identifier},
        )
        return response_type
