from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel

from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope


@dataclass(frozen=True, slots=True)
class AuthCode:
    client: Client | None = None
    user_id: str | None = None
    redirect_uri: str | None = None
    scopes: tuple[Scope, ...] = ()
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    identifier: str = ""
    expires_at: int = 0

    @staticmethod
    def new() -> AuthCode:
        return AuthCode()


class AuthCodePayload(BaseModel):
    """Plaintext inside an encrypted authorization code."""

    client_id: str
    redirect_uri: str | None = None
    auth_code_id: str
    scopes: list[str]
    user_id: str | int | None = None
    expire_time: int
    code_challenge: str | None = None
    code_challenge_method: str | None = None

    @classmethod
    def from_code(cls, auth_code: AuthCode) -> AuthCodePayload:
        if auth_code.client is None:
            raise ValueError("auth code is not bound to a client")
        return cls(
            client_id=auth_code.client.identifier,
            redirect_uri=auth_code.redirect_uri,
            auth_code_id=auth_code.identifier,
            scopes=[scope.identifier for scope in auth_code.scopes],
            user_id=auth_code.user_id,
            expire_time=auth_code.expires_at,
            code_challenge=auth_code.code_challenge,
            code_challenge_method=auth_code.code_challenge_method,
        )
