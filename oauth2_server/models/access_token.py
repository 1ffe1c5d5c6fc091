from __future__ import annotations

from dataclasses import dataclass

from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope


@dataclass(frozen=True, slots=True)
class AccessToken:
    client: Client
    scopes: tuple[Scope, ...]
    user_id: str | None = None
    # Filled in by the grant just before persisting.
    identifier: str = ""
    issued_at: int = 0
    expires_at: int = 0

    @staticmethod
    def new(
        *, client: Client, scopes: tuple[Scope, ...] | list[Scope], user_id: str | None = None
    ) -> AccessToken:
        return AccessToken(client=client, scopes=tuple(scopes), user_id=user_id)

    @property
    def scope_identifiers(self) -> list[str]:
        return [scope.identifier for scope in self.scopes]

    def to_jwt_claims(self) -> dict[str, object]:
        """Claims for the self-contained (signed) form of this token.

        aud = client, jti = token id, sub = user (empty for client-only
        tokens).  Resource servers verify the signature offline and only
        ask the repository about revocation.
        """
        return {
            "aud": self.client.identifier,
            "jti": self.identifier,
            "iat": self.issued_at,
            "nbf": self.issued_at,
            "exp": self.expires_at,
            "sub": self.user_id or "",
            "scopes": self.scope_identifiers,
        }
