import os
import sys

import pytest


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


from restomap.auth.path_rules import PathAccess, classify_path, should_skip_auth  # noqa: E402


@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/images/abc-photo.png"),
        ("DELETE", "/images/abc-photo.png"),
        ("GET", "/uploads/x.png"),
        ("POST", "/users/login"),
        ("POST", "/users/register"),
        ("GET", "/restaurants"),
        ("GET", "/restaurants/popular"),
        ("GET", "/restaurants/latest"),
        ("GET", "/restaurants/42"),
        ("GET", "/restaurants/42/rating"),
        ("GET", "/restaurants/42/favorite/status"),
        ("GET", "/reviews/restaurant/42/page"),
        ("GET", "/health"),
        ("GET", "/docs"),
        ("GET", "/openapi.json"),
    ],
)
def test_public_requests(method: str, path: str) -> None:
    assert should_skip_auth(method, path) is True
    assert classify_path(method, path) is PathAccess.PUBLIC


@pytest.mark.parametrize(
    "method,path",
    [
        ("GET", "/restaurants/favorites"),
        ("GET", "/restaurants/42/favorite"),
        ("POST", "/restaurants/42/favorite"),
        ("DELETE", "/restaurants/42/favorite"),
        ("GET", "/users/42"),
        ("GET", "/users/42/favorites"),
        ("GET", "/users/42/reviews"),
        ("GET", "/users/42/restaurants"),
        ("GET", "/users/me"),
        ("GET", "/reviews/restaurant/42"),
        ("POST", "/reviews/42/like"),
        ("DELETE", "/reviews/42/like"),
        ("GET", "/reviews/42/like"),
        ("GET", "/reviews/42/like-count"),
        ("POST", "/restaurants"),
        ("PUT", "/restaurants/42"),
        ("DELETE", "/restaurants/42"),
        ("POST", "/reviews/42"),
        ("POST", "/reviews/42/upload"),
        ("PUT", "/reviews/42"),
        ("DELETE", "/reviews/42"),
        ("POST", "/users/login/extra"),
    ],
)
def test_protected_requests(method: str, path: str) -> None:
    assert should_skip_auth(method, path) is False
    assert classify_path(method, path) is PathAccess.PROTECTED


def test_protected_patterns_win_over_public_prefixes() -> None:
    # all of these start with a public prefix
    assert should_skip_auth("GET", "/restaurants/favorites") is False
    assert should_skip_auth("GET", "/restaurants/7/favorite") is False
    assert should_skip_auth("GET", "/reviews/restaurant/7") is False


def test_protected_patterns_match_whole_path_only() -> None:
    assert should_skip_auth("GET", "/users/42/favorites") is False
    assert should_skip_auth("GET", "/restaurants/7/favorite/status") is True
    assert should_skip_auth("GET", "/reviews/restaurant/7/page") is True


def test_method_is_case_insensitive_for_public_gets() -> None:
    assert should_skip_auth("get", "/restaurants") is True


def test_classification_is_deterministic() -> None:
    cases = [("GET", "/restaurants/42"), ("POST", "/restaurants/42/favorite"), ("GET", "/users/3")]
    first = [should_skip_auth(m, p) for m, p in cases]
    second = [should_skip_auth(m, p) for m, p in cases]
    assert first == second
