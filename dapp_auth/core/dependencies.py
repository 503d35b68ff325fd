"""
FastAPI Authentication Dependencies
This module provides FastAPI dependency functions that can be injected into route handlers
to reach the services built at startup and to resolve the bearer token.
Usage in endpoints:
    @router.get("/protected")
    async def protected_route(user: UserRecord = Depends(get_current_user)):
        return {"user": user.id}
Flow:
1. Client sends request with Authorization: Bearer <token> header
2. FastAPI calls get_current_user() dependency
3. _extract_token() extracts token from header
4. AuthService.authenticate() verifies the JWT and loads the user
5. Returns the UserRecord to the route handler
"""

from typing import Any, Dict, Optional

from fastapi import Depends, Header, Request

from dapp_auth.core.errors import InvalidTokenError
from dapp_auth.db.manager import Backends
from dapp_auth.models.records import UserRecord
from dapp_auth.services.auth import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_backends(request: Request) -> Backends:
    return request.app.state.backends


def get_client_info(request: Request) -> Dict[str, Any]:
    """Request origin details attached to activity records."""
    info: Dict[str, Any] = {}
    if request.client is not None:
        info["ipAddress"] = request.client.host
    user_agent = request.headers.get("user-agent")
    if user_agent:
        info["userAgent"] = user_agent
    return info


def _extract_token(authorization: Optional[str]) -> str:
    """
    Extract JWT token from Authorization header.
    Supports both "Bearer <token>" and plain token formats.
    Raises:
        InvalidTokenError: If Authorization header is missing or empty
    """
    if not authorization:
        raise InvalidTokenError("Authorization header missing")

    authorization = authorization.strip()
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    else:
        token = authorization
    if not token:
        raise InvalidTokenError("Invalid authorization header")
    return token


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserRecord:
    return await auth_service.authenticate(_extract_token(authorization))
