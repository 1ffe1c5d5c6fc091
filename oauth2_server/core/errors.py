"""Error taxonomy for the grant engine.

Every failure a grant can report is an OAuthServerError carrying one
ErrorKind.  The kind fixes three things a client can rely on:

  error type   : the RFC 6749 `error` string in the JSON body
  HTTP status  : 400 / 401 / 500
  legacy code  : a stable integer older clients match on

LEGACY CODES
-------------
  2  unsupported_grant_type   400
  3  invalid_request          400
  4  invalid_client           401
  5  invalid_scope            400
  6  invalid_credentials      401
  7  server_error             500
  8  invalid_request          401   (refresh token is invalid)
  9  access_denied            401
  10 invalid_grant            400

Code 8 shares the `invalid_request` error type with code 3.  Clients that
need to tell "you forgot a parameter" apart from "your refresh token is
bad" compare the legacy code, not the error type.

CryptoError is NOT an OAuthServerError.  A failed decrypt or
signature check is translated by the grant into the nearest client-facing
kind (invalid_grant for auth codes, invalid refresh token for refresh
tokens) so raw crypto failures never reach the wire.
"""

from __future__ import annotations

import enum
from urllib.parse import urlencode

from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response

from oauth2_server.response_types.base import carried_headers


class ErrorKind(enum.Enum):
    # (error type, HTTP status, legacy code, default message)
    UNSUPPORTED_GRANT_TYPE = (
        "unsupported_grant_type",
        400,
        2,
        "The authorization grant type is not supported by the authorization server.",
    )
    INVALID_REQUEST = (
        "invalid_request",
        400,
        3,
        "The request is missing a required parameter, includes an invalid "
        "parameter value, includes a parameter more than once, or is otherwise "
        "malformed.",
    )
    INVALID_CLIENT = ("invalid_client", 401, 4, "Client authentication failed")
    INVALID_SCOPE = ("invalid_scope", 400, 5, "The requested scope is invalid, unknown, or malformed")
    INVALID_CREDENTIALS = ("invalid_credentials", 401, 6, "The user credentials were incorrect.")
    SERVER_ERROR = (
        "server_error",
        500,
        7,
        "The authorization server encountered an unexpected condition which "
        "prevented it from fulfilling the request.",
    )
    INVALID_REFRESH_TOKEN = ("invalid_request", 401, 8, "The refresh token is invalid.")
    ACCESS_DENIED = (
        "access_denied",
        401,
        9,
        "The resource owner or authorization server denied the request.",
    )
    INVALID_GRANT = (
        "invalid_grant",
        400,
        10,
        "The provided authorization grant (e.g., authorization code, resource "
        "owner credentials) or refresh token is invalid, expired, revoked, does "
        "not match the redirection URI used in the authorization request, or was "
        "issued to another client.",
    )

    def __init__(self, error_type: str, http_status: int, code: int, message: str) -> None:
        self.error_type = error_type
        self.http_status = http_status
        self.code = code
        self.default_message = message


class CryptoError(Exception):
    """Signing, verification, encryption or decryption failed."""


class UniqueTokenIdentifierConstraintViolation(Exception):
    """A repository refused to persist an entity because its identifier is taken."""


class OAuthServerError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        *,
        message: str | None = None,
        hint: str | None = None,
        redirect_uri: str | None = None,
        state: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message or kind.default_message
        self.hint = hint
        self.redirect_uri = redirect_uri
        self.state = state
        # Set by the grant when the client authenticated with HTTP Basic so
        # a 401 can carry a matching WWW-Authenticate challenge.
        self.basic_auth_used = False
        # Implicit-grant errors travel in the URI fragment, not the query.
        self.use_fragment = False
        super().__init__(self.message)

    # ------------------------------------------------------------------
    # Named constructors (one per failure class)
    # ------------------------------------------------------------------

    @classmethod
    def unsupported_grant_type(cls) -> OAuthServerError:
        return cls(
            ErrorKind.UNSUPPORTED_GRANT_TYPE,
            hint="Check that all required parameters have been provided",
        )

    @classmethod
    def invalid_request(cls, parameter: str, hint: str | None = None) -> OAuthServerError:
        return cls(
            ErrorKind.INVALID_REQUEST,
            hint=hint or f"Check the `{parameter}` parameter",
        )

    @classmethod
    def invalid_client(cls) -> OAuthServerError:
        return cls(ErrorKind.INVALID_CLIENT)

    @classmethod
    def invalid_scope(cls, scope: str, redirect_uri: str | None = None) -> OAuthServerError:
        hint = f"Check the `{scope}` scope" if scope else "Specify a scope in the request or set a default scope"
        return cls(ErrorKind.INVALID_SCOPE, hint=hint, redirect_uri=redirect_uri)

    @classmethod
    def invalid_credentials(cls) -> OAuthServerError:
        return cls(ErrorKind.INVALID_CREDENTIALS)

    @classmethod
    def server_error(cls, hint: str) -> OAuthServerError:
        return cls(ErrorKind.SERVER_ERROR, hint=hint)

    @classmethod
    def invalid_refresh_token(cls, hint: str | None = None) -> OAuthServerError:
        return cls(ErrorKind.INVALID_REFRESH_TOKEN, hint=hint)

    @classmethod
    def access_denied(
        cls, hint: str | None = None, redirect_uri: str | None = None, state: str | None = None
    ) -> OAuthServerError:
        return cls(ErrorKind.ACCESS_DENIED, hint=hint, redirect_uri=redirect_uri, state=state)

    @classmethod
    def invalid_grant(cls, hint: str | None = None) -> OAuthServerError:
        return cls(ErrorKind.INVALID_GRANT, hint=hint)

    # ------------------------------------------------------------------
    # Wire representation
    # ------------------------------------------------------------------

    @property
    def error_type(self) -> str:
        return self.kind.error_type

    @property
    def http_status(self) -> int:
        return self.kind.http_status

    @property
    def code(self) -> int:
        return self.kind.code

    @property
    def payload(self) -> dict[str, str]:
        body = {
            "error": self.error_type,
            "error_description": self.message,
            "message": self.message,
        }
        if self.hint:
            body["hint"] = self.hint
        return body

    def generate_http_response(self, response: Response | None = None) -> Response:
        """Render this error as a response.

        With a redirect URI the error travels back to the client in the
        query string (or fragment, for the implicit grant) of a 302.
        Otherwise it is a JSON body with the kind's HTTP status.
        """
        headers = carried_headers(response)

        if self.redirect_uri is not None:
            params = dict(self.payload)
            if self.state is not None:
                params["state"] = self.state
            separator = "#" if self.use_fragment else ("&" if "?" in self.redirect_uri else "?")
            return RedirectResponse(
                url=f"{self.redirect_uri}{separator}{urlencode(params)}",
                status_code=302,
                headers=headers,
            )

        if self.kind is ErrorKind.INVALID_CLIENT and self.basic_auth_used:
            headers["WWW-Authenticate"] = 'Basic realm="OAuth"'

        return JSONResponse(content=self.payload, status_code=self.http_status, headers=headers)

