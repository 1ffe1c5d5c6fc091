from __future__ import annotations

from typing import Protocol

from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope


class ScopeRepo(Protocol):
    def get_scope_entity_by_identifier(self, identifier: str) -> Scope | None: ...

    def finalize_scopes(
        self,
        scopes: list[Scope],
        grant_type: str,
        client: Client,
        user_id: str | None = None,
    ) -> list[Scope]:
        """Last word on the scopes a token gets; may add or drop scopes by policy."""
        ...


class InMemoryScopeRepo:
    def __init__(self) -> None:
        self._by_identifier: dict[str, Scope] = {}

    def add(self, scope: Scope) -> None:
        self._by_identifier[scope.identifier] = scope

    def get_scope_entity_by_identifier(self, identifier: str) -> Scope | None:
        return self._by_identifier.get(identifier)

    def finalize_scopes(
        self,
        scopes: list[Scope],
        grant_type: str,
        client: Client,
        user_id: str | None = None,
    ) -> list[Scope]:
        # No policy overrides: the validated request scopes stand.
        return list(scopes)
