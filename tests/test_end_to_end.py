"""
A reviewer's full session against the API: register, log in, browse anonymously,
create a restaurant, review it, favorite it, and get rejected with a tampered token.
"""

import json
import os
import sys

from fastapi.testclient import TestClient


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


def _tamper(token: str) -> str:
    header, payload, signature = token.split(".")
    middle = len(payload) // 2
    swapped = "A" if payload[middle] != "A" else "B"
    return ".".join([header, payload[:middle] + swapped + payload[middle + 1:], signature])


def test_reviewer_session(client: TestClient) -> None:
    registered = client.post(
        "/users/register", json={"username": "alice", "password": "secret1", "email": "alice@example.com"}
    )
    assert registered.status_code == 201

    token = client.post("/users/login", json={"username": "alice", "password": "secret1"}).json()
    headers = {"Authorization": f"Bearer {token}"}

    created = client.post(
        "/restaurants",
        data={"restaurant": json.dumps({"name": "Pho 1", "address": "2 Elm St", "category": "Vietnamese"})},
        headers=headers,
    )
    assert created.status_code == 200
    restaurant_id = created.json()["id"]

    anonymous = client.get(f"/restaurants/{restaurant_id}")
    assert anonymous.status_code == 200
    assert anonymous.json()["name"] == "Pho 1"
    assert anonymous.json()["averageRating"] == 0.0

    review = client.post(
        f"/reviews/{restaurant_id}",
        data={"review": json.dumps({"content": "Rich broth", "rating": 5})},
        headers=headers,
    )
    assert review.status_code == 200
    assert client.get(f"/restaurants/{restaurant_id}/rating").json() == 5.0

    no_token = client.post(f"/restaurants/{restaurant_id}/favorite")
    assert no_token.status_code == 401
    assert no_token.json() == {"error": "No token", "message": "Please log in first"}

    favorite = client.post(f"/restaurants/{restaurant_id}/favorite", headers=headers)
    assert favorite.status_code == 201

    tampered = client.get("/restaurants/favorites", headers={"Authorization": f"Bearer {_tamper(token)}"})
    assert tampered.status_code == 401
    assert tampered.json() == {"error": "Invalid token", "message": "Please log in again"}

    favorites = client.get("/restaurants/favorites", headers=headers).json()
    assert [r["id"] for r in favorites] == [restaurant_id]
    assert favorites[0]["reviewCount"] == 1
