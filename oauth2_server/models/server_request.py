from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping
from dataclasses import dataclass, field

from starlette.requests import Request


@dataclass(frozen=True, slots=True)
class ServerRequest:
    """The parts of an inbound HTTP request the grants read.

    `body` is the parsed form body (token endpoint), `query` the query
    string (authorize endpoint).  Header names are stored lower-cased.
    """

    body: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", {k.lower(): v for k, v in self.headers.items()})

    @classmethod
    async def from_starlette(cls, request: Request) -> ServerRequest:
        body: dict[str, str] = {}
        if request.method == "POST":
            form = await request.form()
            # Uploaded files have no meaning for OAuth parameters.
            body = {key: value for key, value in form.items() if isinstance(value, str)}
        return cls(
            body=body,
            query=dict(request.query_params),
            headers=dict(request.headers),
        )

    def body_param(self, name: str, default: str | None = None) -> str | None:
        return self.body.get(name, default)

    def query_param(self, name: str, default: str | None = None) -> str | None:
        return self.query.get(name, default)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def basic_auth_credentials(self) -> tuple[str | None, str | None]:
        """(client_id, client_secret) from an `Authorization: Basic` header, if any."""
        header = self.header("authorization")
        if not header or not header.lower().startswith("basic "):
            return None, None
        try:
            decoded = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None, None
        if ":" not in decoded:
            return None, None
        username, password = decoded.split(":", 1)
        return username or None, password or None
