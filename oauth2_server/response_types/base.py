from __future__ import annotations

from typing import Protocol

from starlette.responses import Response

from oauth2_server.models.access_token import AccessToken
from oauth2_server.models.refresh_token import RefreshToken


class ResponseType(Protocol):
    def set_access_token(self, access_token: AccessToken) -> None: ...
    def set_refresh_token(self, refresh_token: RefreshToken) -> None: ...

    def generate_http_response(self, response: Response | None = None) -> Response:
        """Render the issued entities.  Headers already set on `response`
        are carried over to the returned response."""
        ...


class AbstractResponseType:
    def __init__(self) -> None:
        self.access_token: AccessToken | None = None
        self.refresh_token: RefreshToken | None = None

    def set_access_token(self, access_token: AccessToken) -> None:
        self.access_token = access_token

    def set_refresh_token(self, refresh_token: RefreshToken) -> None:
        self.refresh_token = refresh_token


def carried_headers(response: Response | None) -> dict[str, str]:
    """Headers the caller already set on its response carrier, minus framing."""
    if response is None:
        return {}
    return {
        key: value
        for key, value in response.headers.items()
        if key.lower() not in ("content-length", "content-type", "location")
    }
