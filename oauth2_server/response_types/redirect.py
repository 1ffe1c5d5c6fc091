from __future__ import annotations

from fastapi.responses import RedirectResponse
from starlette.responses import Response

from oauth2_server.response_types.base import AbstractResponseType, carried_headers


class RedirectResponseType(AbstractResponseType):
    """302 back to the client; the grant has already built the full URI."""

    def __init__(self, redirect_uri: str) -> None:
        super().__init__()
        self.redirect_uri = redirect_uri

    def generate_http_response(self, response: Response | None = None) -> Response:
        return RedirectResponse(
            url=self.redirect_uri, status_code=302, headers=carried_headers(response)
        )
