from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Client:
    identifier: str
    name: str
    redirect_uris: tuple[str, ...]
    is_confidential: bool
    # Argon2 hash of the client secret; None for public clients.
    secret_hash: str | None = None
    # None means "no restriction".
    allowed_scopes: frozenset[str] | None = None
    allowed_grant_types: frozenset[str] | None = None

    @staticmethod
    def new(
        *,
        identifier: str,
        name: str,
        redirect_uris: tuple[str, ...] = (),
        secret_hash: str | None = None,
        allowed_scopes: frozenset[str] | None = None,
        allowed_grant_types: frozenset[str] | None = None,
    ) -> Client:
        # A client is confidential exactly when it was registered with a secret.
        return Client(
            identifier=identifier,
            name=name,
            redirect_uris=tuple(redirect_uris),
            is_confidential=secret_hash is not None,
            secret_hash=secret_hash,
            allowed_scopes=frozenset(allowed_scopes) if allowed_scopes is not None else None,
            allowed_grant_types=(
                frozenset(allowed_grant_types) if allowed_grant_types is not None else None
            ),
        )

    @property
    def default_redirect_uri(self) -> str | None:
        return self.redirect_uris[0] if self.redirect_uris else None

    def has_redirect_uri(self, redirect_uri: str) -> bool:
        # Exact match only; prefix or wildcard matching opens redirect attacks.
        return redirect_uri in self.redirect_uris

    def allows_scope(self, scope_identifier: str) -> bool:
        return self.allowed_scopes is None or scope_identifier in self.allowed_scopes

    def allows_grant_type(self, grant_type: str) -> bool:
        return self.allowed_grant_types is None or grant_type in self.allowed_grant_types
