from __future__ import annotations

from dataclasses import dataclass, field

from oauth2_server.models.client import Client
from oauth2_server.models.scope import Scope
from oauth2_server.models.user import User


# Not frozen: the caller sets `user` and `approved` after the resource owner
# has interacted with the consent screen, between validate and complete.
@dataclass(slots=True)
class AuthorizationRequest:
    grant_type_id: str
    client: Client
    scopes: list[Scope] = field(default_factory=list)
    redirect_uri: str | None = None
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    user: User | None = None
    approved: bool = False

    @property
    def effective_redirect_uri(self) -> str | None:
        """The URI the response goes to: the requested one, else the client's default."""
        return self.redirect_uri or self.client.default_redirect_uri
