"""
Image blob cleanup around restaurant and review writes: replaced images are
deleted on a best-effort basis, and a failed commit removes the blob it uploaded.
"""

import json
import os
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


from conftest import PNG_BYTES  # noqa: E402
from restomap.auth.principal import Principal, Role  # noqa: E402
from restomap.errors import StorageError  # noqa: E402
from restomap.services import restaurant_service, review_service  # noqa: E402
from restomap.services.restaurant_service import RestaurantInput  # noqa: E402
from restomap.services.review_service import ReviewInput  # noqa: E402
from restomap.storage.file_storage import STORAGE_ROOT, LocalImageStorage  # noqa: E402
from restomap.storage.image_storage import ImageUpload, discard_image  # noqa: E402


class _UndeletableStorage(LocalImageStorage):
    def delete_image(self, url: str) -> None:
        raise StorageError(f"Failed to delete image {url}")


@pytest.fixture
def undeletable_storage():
    from app import app, get_storage

    app.dependency_overrides[get_storage] = lambda: _UndeletableStorage(STORAGE_ROOT)
    yield
    app.dependency_overrides.clear()


def _failing_commit_session() -> MagicMock:
    db = MagicMock()
    db.commit.side_effect = OperationalError("COMMIT", {}, Exception("database is locked"))
    return db


def _upload() -> ImageUpload:
    return ImageUpload(filename="dish.png", content_type="image/png", data=PNG_BYTES)


# ==================== BEST-EFFORT DELETE OF THE OLD IMAGE ====================


def test_discard_image_logs_storage_failure(caplog) -> None:
    storage = MagicMock()
    storage.delete_image.side_effect = StorageError("bucket unreachable")

    discard_image(storage, "/images/old.png")

    assert "Could not delete image /images/old.png" in caplog.text


def test_discard_image_ignores_empty_url() -> None:
    storage = MagicMock()

    discard_image(storage, None)

    storage.delete_image.assert_not_called()


def test_restaurant_update_succeeds_when_old_image_delete_fails(
    client: TestClient, make_user, make_restaurant, undeletable_storage
) -> None:
    alice = make_user("alice")
    restaurant = make_restaurant(alice["headers"], image=PNG_BYTES)
    body = {"name": "Renamed", "address": "1 Main St", "category": "Noodles"}

    resp = client.put(
        f"/restaurants/{restaurant['id']}",
        data={"restaurant": json.dumps(body)},
        files={"image": ("new.png", PNG_BYTES, "image/png")},
        headers=alice["headers"],
    )

    assert resp.status_code == 200
    assert resp.json()["name"] == "Renamed"
    assert resp.json()["imageUrl"] != restaurant["imageUrl"]


def test_restaurant_image_removal_succeeds_when_delete_fails(
    client: TestClient, make_user, make_restaurant, undeletable_storage
) -> None:
    alice = make_user("alice")
    restaurant = make_restaurant(alice["headers"], image=PNG_BYTES)
    body = {"name": "Noodle Bar", "address": "1 Main St", "category": "Noodles"}

    resp = client.put(
        f"/restaurants/{restaurant['id']}",
        data={"restaurant": json.dumps(body), "removeImage": "true"},
        headers=alice["headers"],
    )

    assert resp.status_code == 200
    assert resp.json()["imageUrl"] is None


def test_review_update_succeeds_when_old_image_delete_fails(
    client: TestClient, make_user, make_restaurant, undeletable_storage
) -> None:
    alice = make_user("alice")
    restaurant = make_restaurant(alice["headers"])
    created = client.post(
        f"/reviews/{restaurant['id']}",
        data={"review": json.dumps({"content": "First", "rating": 2})},
        files={"image": ("old.png", PNG_BYTES, "image/png")},
        headers=alice["headers"],
    ).json()

    resp = client.put(
        f"/reviews/{created['id']}",
        data={"review": json.dumps({"content": "Second", "rating": 4})},
        files={"image": ("new.png", PNG_BYTES, "image/png")},
        headers=alice["headers"],
    )

    assert resp.status_code == 200
    assert resp.json()["content"] == "Second"
    assert resp.json()["imageUrl"] != created["imageUrl"]


# ==================== FAILED COMMIT REMOVES THE NEW IMAGE ====================


def test_failed_restaurant_insert_discards_uploaded_image() -> None:
    db = _failing_commit_session()
    storage = MagicMock()
    storage.upload_image.return_value = "/images/new.png"
    principal = Principal(username="alice", role=Role.REVIEWER, user_id=1)
    data = RestaurantInput(name="Noodle Bar", address="1 Main St", category="Noodles")

    with pytest.raises(OperationalError):
        restaurant_service.create_restaurant(db, storage, principal, data, _upload())

    db.rollback.assert_called_once()
    storage.delete_image.assert_called_once_with("/images/new.png")


def test_failed_restaurant_update_keeps_old_image(monkeypatch) -> None:
    db = _failing_commit_session()
    storage = MagicMock()
    storage.upload_image.return_value = "/images/new.png"
    existing = SimpleNamespace(id=7, created_by_username="alice", image_url="/images/old.png")
    monkeypatch.setattr(restaurant_service, "require_restaurant", lambda session, restaurant_id: existing)
    principal = Principal(username="alice", role=Role.REVIEWER, user_id=1)
    data = RestaurantInput(name="Noodle Bar", address="1 Main St", category="Noodles")

    with pytest.raises(OperationalError):
        restaurant_service.update_restaurant(db, storage, principal, 7, data, _upload())

    storage.delete_image.assert_called_once_with("/images/new.png")


def test_failed_review_insert_discards_uploaded_image(monkeypatch) -> None:
    db = _failing_commit_session()
    storage = MagicMock()
    storage.upload_image.return_value = "/images/review.png"
    monkeypatch.setattr(review_service, "require_restaurant", lambda session, restaurant_id: MagicMock(reviews=[]))
    monkeypatch.setattr(review_service.crud, "get_user_by_username", lambda session, username: MagicMock())
    monkeypatch.setattr(review_service.models, "Review", MagicMock())
    principal = Principal(username="alice", role=Role.REVIEWER, user_id=1)

    with pytest.raises(OperationalError):
        review_service.create_review(db, storage, principal, 3, ReviewInput(content="Nice", rating=4), _upload())

    db.rollback.assert_called_once()
    storage.delete_image.assert_called_once_with("/images/review.png")
