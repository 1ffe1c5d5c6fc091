"""HTTP surface of the authorization server.

  GET  /oauth/authorize  - front channel (authorization_code, implicit)
  POST /oauth/token      - back channel (every token-endpoint grant)

The handlers only translate between starlette and ServerRequest; all
protocol decisions live in the AuthorizationServer and its grants.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from oauth2_server.authorization_server import AuthorizationServer
from oauth2_server.core.errors import OAuthServerError
from oauth2_server.models.server_request import ServerRequest
from oauth2_server.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


def get_authorization_server(request: Request) -> AuthorizationServer:
    return request.app.state.authorization_server


def get_demo_user(request: Request) -> User | None:
    return getattr(request.app.state, "demo_user", None)


async def oauth_error_handler(request: Request, exc: OAuthServerError) -> Response:
    """Render an OAuthServerError as JSON, or as a redirect when it carries one."""
    logger.info(
        "OAuth error  path=%s error=%s code=%d",
        request.url.path,
        exc.error_type,
        exc.code,
        extra={"error_type": exc.error_type, "status_code": exc.http_status},
    )
    return exc.generate_http_response()


@router.post("/oauth/token")
async def token(
    request: Request,
    server: Annotated[AuthorizationServer, Depends(get_authorization_server)],
) -> Response:
    server_request = await ServerRequest.from_starlette(request)
    return server.respond_to_access_token_request(server_request)


@router.get("/oauth/authorize")
async def authorize(
    request: Request,
    server: Annotated[AuthorizationServer, Depends(get_authorization_server)],
    demo_user: Annotated[User | None, Depends(get_demo_user)],
) -> Response:
    server_request = await ServerRequest.from_starlette(request)
    auth_request = server.validate_authorization_request(server_request)

    # No login or consent screen here: the configured demo user approves
    # everything.  A real deployment authenticates the resource owner and
    # records their decision before completing.
    if demo_user is None:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Interactive authorization is not available",
        )
    auth_request.user = demo_user
    auth_request.approved = True
    logger.info(
        "Authorization auto-approved for demo user  client_id=%s",
        auth_request.client.identifier,
        extra={"client_id": auth_request.client.identifier},
    )
    return server.complete_authorization_request(auth_request)
