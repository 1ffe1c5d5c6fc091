from __future__ import annotations

import time

from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.responses import Response

from oauth2_server.models.refresh_token import RefreshTokenPayload
from oauth2_server.response_types.base import AbstractResponseType, carried_headers
from oauth2_server.services.crypto_signer import CryptoSigner


class TokenResponse(BaseModel):
    token_type: str = "Bearer"
    expires_in: int
    access_token: str
    refresh_token: str | None = None


class BearerTokenResponse(AbstractResponseType):
    """RFC 6750 bearer token response.

    The access token goes out as a signed JWT, the refresh token (if any)
    as an encrypted payload only this server can read back.
    """

    def __init__(self, signer: CryptoSigner) -> None:
        super().__init__()
        self._signer = signer

    def get_extra_params(self) -> dict[str, object]:
        """Hook for subclasses adding fields (e.g. id_token) to the body."""
        return {}

    def build_body(self) -> dict[str, object]:
        if self.access_token is None:
            raise RuntimeError("generate_http_response() called before set_access_token()")

        access_token = self.access_token
        body = TokenResponse(
            expires_in=max(access_token.expires_at - int(time.time()), 0),
            access_token=self._signer.encode_jwt(access_token.to_jwt_claims()),
        )
        if self.refresh_token is not None:
            payload = RefreshTokenPayload.from_token(self.refresh_token)
            body.refresh_token = self._signer.encrypt(payload.model_dump_json())

        return {**body.model_dump(exclude_none=True), **self.get_extra_params()}

    def generate_http_response(self, response: Response | None = None) -> Response:
        headers = carried_headers(response)
        # Token responses must never be cached (RFC 6749 §5.1).
        headers["Cache-Control"] = "no-store"
        headers["Pragma"] = "no-cache"
        return JSONResponse(content=self.build_body(), status_code=200, headers=headers)
