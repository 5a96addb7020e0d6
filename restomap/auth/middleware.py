"""
Bearer-token authentication middleware and the principal dependencies used by routes
"""

import logging
from typing import Any, Callable, Optional

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response

from ..errors import AuthenticationError, AuthorizationError, ErrorContext
from .jwt_auth import JWTAuth
from .path_rules import should_skip_auth
from .principal import Principal, Role, has_any_role, parse_role

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def _unauthorized(error: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": error, "message": message})


def extract_bearer_token(header_value: Optional[str]) -> Optional[str]:
    """Token part of an Authorization header, or None when absent or not a bearer header."""
    if not header_value or not header_value.startswith(BEARER_PREFIX):
        return None
    token = header_value[len(BEARER_PREFIX):].strip()
    return token or None


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Resolves the request principal from the bearer token.

    load_user(username) returns the stored user (anything with id, username
    and role attributes) or None. It is called in the threadpool since it
    normally hits the database.
    """

    def __init__(self, app: Any, auth: JWTAuth, load_user: Callable[[str], Any]):
        super().__init__(app)
        self.auth = auth
        self.load_user = load_user

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        method = request.method
        path = request.url.path

        if method == "OPTIONS" or should_skip_auth(method, path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("Authorization"))
        if token is None:
            logger.info(f"Rejected {method} {path}: no token")
            return _unauthorized("No token", "Please log in first")

        try:
            if not self.auth.validate_token(token):
                logger.info(f"Rejected {method} {path}: invalid token")
                return _unauthorized("Invalid token", "Please log in again")

            username = self.auth.get_username_from_token(token)
            claimed_role = self.auth.get_role_from_token(token)
            user = await run_in_threadpool(self.load_user, username)
            if user is None:
                raise LookupError(f"Unknown user {username}")

            role = parse_role(user.role)
            if claimed_role is not None and claimed_role != role:
                logger.debug(f"Role claim for {username} differs from stored role")
            request.state.principal = Principal(username=user.username, role=role, user_id=user.id)
        except Exception as e:
            logger.warning(f"Authentication failed for {method} {path}: {type(e).__name__}")
            return _unauthorized("Authentication failed", "Please log in again")

        return await call_next(request)


def get_principal(request: Request) -> Optional[Principal]:
    """Principal attached by the middleware, None for anonymous requests."""
    return getattr(request.state, "principal", None)


def require_principal(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    if principal is None:
        raise AuthenticationError("Authentication required")
    return principal


def require_role(*roles: Role) -> Callable[..., Principal]:
    """Dependency factory: the principal must hold one of the given roles."""
    allowed = frozenset(roles)

    def dependency(principal: Principal = Depends(require_principal)) -> Principal:
        if not has_any_role(principal, allowed):
            raise AuthorizationError(
                "Access denied",
                ErrorContext(username=principal.username, additional_info={"required": sorted(r.value for r in allowed)}),
            )
        return principal

    return dependency
