"""
Request path classification for the authentication middleware.

Decides, from the HTTP method and path alone, whether a request may pass
without a bearer token. Rules are evaluated in order and the first match wins:

1. asset prefixes (served images) are public;
2. the login and register endpoints are public;
3. explicitly protected patterns (numeric-id personal resources and
   mutations of likes/favorites) require a token for every method;
4. GET requests on browsing paths and the public prefixes are public;
5. everything else requires a token.
"""

import re
from enum import Enum

ASSET_PREFIXES = ("/images/", "/uploads/")

AUTH_ENDPOINTS = ("/users/login", "/users/register")

PUBLIC_PREFIXES = (
    "/auth/",
    "/users/login",
    "/users/register",
    "/restaurants/popular",
    "/restaurants/latest",
    "/reviews/restaurant",
    "/restaurants",
    "/images/",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
)

PROTECTED_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"/restaurants/favorites",
        r"/restaurants/\d+/favorite",
        r"/users/\d+",
        r"/users/\d+/favorites",
        r"/users/\d+/reviews",
        r"/users/\d+/restaurants",
        r"/reviews/restaurant/\d+",
        r"/reviews/\d+/like",
    )
)


class PathAccess(Enum):
    PUBLIC = "public"
    PROTECTED = "protected"


def _is_protected(path: str) -> bool:
    return any(pattern.fullmatch(path) for pattern in PROTECTED_PATTERNS)


def _is_public_get(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PUBLIC_PREFIXES)


def classify_path(method: str, path: str) -> PathAccess:
    if any(path.startswith(prefix) for prefix in ASSET_PREFIXES):
        return PathAccess.PUBLIC
    if path in AUTH_ENDPOINTS:
        return PathAccess.PUBLIC
    if _is_protected(path):
        return PathAccess.PROTECTED
    if method.upper() == "GET" and _is_public_get(path):
        return PathAccess.PUBLIC
    return PathAccess.PROTECTED


def should_skip_auth(method: str, path: str) -> bool:
    """True when the request may pass through without a bearer token."""
    return classify_path(method, path) is PathAccess.PUBLIC
