from __future__ import annotations

from typing import Protocol

from oauth2_server.core.errors import UniqueTokenIdentifierConstraintViolation
from oauth2_server.models.refresh_token import RefreshToken


class RefreshTokenRepo(Protocol):
    def get_new_refresh_token(self) -> RefreshToken | None:
        """A fresh, unsaved refresh token; None disables refresh tokens."""
        ...

    def persist_new_refresh_token(self, token: RefreshToken) -> None: ...
    def revoke_refresh_token(self, token_id: str) -> None: ...
    def is_refresh_token_revoked(self, token_id: str) -> bool: ...


class InMemoryRefreshTokenRepo:
    def __init__(self) -> None:
        self._by_id: dict[str, RefreshToken] = {}
        self._revoked: set[str] = set()

    def get_new_refresh_token(self) -> RefreshToken | None:
        return RefreshToken.new()

    def persist_new_refresh_token(self, token: RefreshToken) -> None:
        if token.identifier in self._by_id:
            raise UniqueTokenIdentifierConstraintViolation(token.identifier)
        self._by_id[token.identifier] = token

    def revoke_refresh_token(self, token_id: str) -> None:
        self._revoked.add(token_id)

    def is_refresh_token_revoked(self, token_id: str) -> bool:
        return token_id in self._revoked

    def get(self, token_id: str) -> RefreshToken | None:
        return self._by_id.get(token_id)
