from __future__ import annotations

from typing import Protocol

from oauth2_server.core.errors import UniqueTokenIdentifierConstraintViolation
from oauth2_server.models.access_token import AccessToken
from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope


class AccessTokenRepo(Protocol):
    def get_new_token(
        self, client: Client, scopes: list[Scope], user_id: str | None = None
    ) -> AccessToken: ...

    def persist_new_access_token(self, token: AccessToken) -> None:
        """Raise UniqueTokenIdentifierConstraintViolation if the identifier is taken."""
        ...

    def revoke_access_token(self, token_id: str) -> None: ...
    def is_access_token_revoked(self, token_id: str) -> bool: ...


class InMemoryAccessTokenRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, AccessToken] = {}
        self._revoked: set[str] = set()

    def get_new_token(
        self, client: Client, scopes: list[Scope], user_id: str | None = None
    ) -> AccessToken:
        return AccessToken.new(client=client, scopes=scopes, user_id=user_id)

    def persist_new_access_token(self, token: AccessToken) -> None:
        if token.identifier in self._by_id:
            raise UniqueTokenIdentifierConstraintViolation(token.identifier)
        self._by_id[token.identifier] = token

    def revoke_access_token(self, token_id: str) -> None:
        self._revoked.add(token_id)

    def is_access_token_revoked(self, token_id: str) -> bool:
        return token_id in self._revoked

    def get(self, token_id: str) -> AccessToken | None:
        return self._by_id.get(token_id)
