from __future__ import annotations

from typing import Protocol

from oauth2_server.models.client import Client
from oauth2_server.services import password_service


class ClientRepo(Protocol):
    def get_client_entity(
        self,
        client_id: str,
        grant_type: str | None,
        client_secret: str | None = None,
        must_validate_secret: bool = True,
    ) -> Client | None:
        """Return the client if it exists, may use `grant_type`, and (for a
        confidential client, when `must_validate_secret`) the secret matches."""
        ...


class InMemoryClientRepo:
    def __init__(self) -> None:
        self._by_client_id: dict[str, Client] = {}

    def register(self, client: Client) -> None:
        self._by_client_id[client.identifier] = client

    def get_client_entity(
        self,
        client_id: str,
        grant_type: str | None,
        client_secret: str | None = None,
        must_validate_secret: bool = True,
    ) -> Client | None:
        client = self._by_client_id.get(client_id)
        if client is None:
            return None
        if grant_type is not None and not client.allows_grant_type(grant_type):
            return None
        if client.is_confidential and must_validate_secret:
            if not password_service.verify_password(client_secret, client.secret_hash):
                return None
        return client
