from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel

from oauth2_server.models.access_token import AccessToken


@dataclass(frozen=True, slots=True)
class RefreshToken:
    access_token: AccessToken | None = None
    identifier: str = ""
    expires_at: int = 0

    @staticmethod
    def new() -> RefreshToken:
        return RefreshToken()


class RefreshTokenPayload(BaseModel):
    """Plaintext inside an encrypted refresh token.

    The bearer string a client holds is Fernet(json(payload)); only the
    issuing server can read or forge it.
    """

    client_id: str
    refresh_token_id: str
    access_token_id: str
    scopes: list[str]
    user_id: str | int | None = None
    expire_time: int

    @classmethod
    def from_token(cls, refresh_token: RefreshToken) -> RefreshTokenPayload:
        access_token = refresh_token.access_token
        if access_token is None:
            raise ValueError("refresh token is not bound to an access token")
        return cls(
            client_id=access_token.client.identifier,
            refresh_token_id=refresh_token.identifier,
            access_token_id=access_token.identifier,
            scopes=access_token.scope_identifiers,
            user_id=access_token.user_id,
            expire_time=refresh_token.expires_at,
        )
