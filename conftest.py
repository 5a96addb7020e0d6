"""
Pytest configuration and fixtures for the entire test suite.

The database and image directory are pointed at a temporary directory before
the application is imported, and every table is emptied before each test.
"""

import json
import os
import sys
import tempfile
from typing import Any, Callable, Dict, Optional

import pytest

sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

_TEST_DIR = tempfile.mkdtemp(prefix="restomap-tests-")
os.environ["SQLALCHEMY_DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'restomap-test.db')}"
os.environ["IMAGE_STORAGE"] = "local"
os.environ["IMAGE_STORAGE_ROOT"] = os.path.join(_TEST_DIR, "images")
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["JWT_EXPIRATION_SECONDS"] = "3600"
os.environ.pop("DEFAULT_ADMIN_USERNAME", None)
os.environ.pop("DEFAULT_ADMIN_PASSWORD", None)

DEFAULT_PASSWORD = "secret1"

# Smallest valid 1x1 PNG
PNG_BYTES = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


@pytest.fixture(autouse=True)
def clean_database():
    """Empty every table before each test"""
    from restomap.db import crud
    from restomap.db.database import SessionLocal

    with SessionLocal() as db:
        crud.ensure_schema(db)
        crud.reset_database(db)
    yield


@pytest.fixture
def db_session():
    from restomap.db.database import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def client():
    """FastAPI test client"""
    from fastapi.testclient import TestClient
    from app import app

    return TestClient(app)


@pytest.fixture
def jwt_auth():
    from app import jwt_auth as auth

    return auth


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_user(client) -> Callable[..., Dict[str, Any]]:
    """Register and log in a user; returns id, username, token and headers"""

    def _make_user(username: str, password: str = DEFAULT_PASSWORD, email: Optional[str] = None) -> Dict[str, Any]:
        resp = client.post(
            "/users/register",
            json={"username": username, "password": password, "email": email or f"{username}@example.com"},
        )
        assert resp.status_code == 201, resp.text
        user = resp.json()
        login = client.post("/users/login", json={"username": username, "password": password})
        assert login.status_code == 200, login.text
        token = login.json()
        return {"id": user["id"], "username": username, "token": token, "headers": bearer(token)}

    return _make_user


@pytest.fixture
def make_admin(client, db_session, jwt_auth) -> Callable[..., Dict[str, Any]]:
    """Create an ADMIN account through the default-admin bootstrap and log it in"""
    from restomap.services import user_service

    def _make_admin(username: str = "admin", password: str = "adminpass") -> Dict[str, Any]:
        user = user_service.ensure_default_admin(db_session, jwt_auth, username, password, f"{username}@example.com")
        login = client.post("/users/login", json={"username": username, "password": password})
        assert login.status_code == 200, login.text
        token = login.json()
        return {"id": user.id, "username": username, "token": token, "headers": bearer(token)}

    return _make_admin


@pytest.fixture
def make_restaurant(client) -> Callable[..., Dict[str, Any]]:
    """Create a restaurant through the API as the given user"""

    def _make_restaurant(headers: Dict[str, str], image: Optional[bytes] = None, **fields: Any) -> Dict[str, Any]:
        body = {"name": "Noodle Bar", "address": "1 Main St", "category": "Noodles"}
        body.update(fields)
        files = {"image": ("photo.png", image, "image/png")} if image is not None else None
        resp = client.post("/restaurants", data={"restaurant": json.dumps(body)}, files=files, headers=headers)
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _make_restaurant


@pytest.fixture
def make_review(client) -> Callable[..., Dict[str, Any]]:
    """Post a review through the API as the given user"""

    def _make_review(headers: Dict[str, str], restaurant_id: int, rating: int = 4, content: str = "Tasty") -> Dict[str, Any]:
        resp = client.post(
            f"/reviews/{restaurant_id}",
            data={"review": json.dumps({"content": content, "rating": rating})},
            headers=headers,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    return _make_review
