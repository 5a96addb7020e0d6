"""
Locust performance tests for the RestoMap API.
Tests throughput and latency for the browsing and reviewing endpoints.

To run:
    locust -f tests/locustfile.py --host=http://localhost:8000

Then open http://localhost:8089 in your browser to start the test.
"""

import json
import random
import uuid

from locust import HttpUser, task, between


class ReviewerUser(HttpUser):
    """Simulates a signed-in reviewer browsing, reviewing and liking"""
    wait_time = between(1, 3)

    def on_start(self):
        """Register a throwaway reviewer and log in"""
        username = f"load-{uuid.uuid4().hex[:12]}"
        self.client.post(
            "/users/register",
            json={"username": username, "password": "loadtest1", "email": f"{username}@example.com"},
            name="POST /users/register",
        )
        response = self.client.post(
            "/users/login", json={"username": username, "password": "loadtest1"}, name="POST /users/login"
        )
        if response.status_code == 200:
            self.headers = {"Authorization": f"Bearer {response.json()}"}
        else:
            self.headers = None
        self.restaurant_ids = []

    def _pick_restaurant(self):
        if not self.restaurant_ids:
            page = self.client.get("/restaurants?size=20", name="GET /restaurants").json()
            self.restaurant_ids = [r["id"] for r in page.get("content", [])]
        return random.choice(self.restaurant_ids) if self.restaurant_ids else None

    @task(4)
    def browse_restaurants(self):
        """Paged listing - most common operation"""
        self.client.get("/restaurants?page=0&size=10&sort=averageRating,desc", name="GET /restaurants")

    @task(2)
    def view_restaurant(self):
        restaurant_id = self._pick_restaurant()
        if restaurant_id is None:
            return
        self.client.get(f"/restaurants/{restaurant_id}", name="GET /restaurants/{id}")
        self.client.get(f"/reviews/restaurant/{restaurant_id}/page", name="GET /reviews/restaurant/{id}/page")

    @task(1)
    def create_restaurant(self):
        if not self.headers:
            return
        body = {"name": f"Load Bistro {uuid.uuid4().hex[:6]}", "address": "1 Test Way", "category": "Test"}
        response = self.client.post(
            "/restaurants", data={"restaurant": json.dumps(body)}, headers=self.headers, name="POST /restaurants"
        )
        if response.status_code == 200:
            self.restaurant_ids.append(response.json()["id"])

    @task(2)
    def write_review(self):
        restaurant_id = self._pick_restaurant()
        if not self.headers or restaurant_id is None:
            return
        review = {"content": "Load test review", "rating": random.randint(1, 5)}
        response = self.client.post(
            f"/reviews/{restaurant_id}",
            data={"review": json.dumps(review)},
            headers=self.headers,
            name="POST /reviews/{restaurantId}",
        )
        if response.status_code == 200:
            self.client.post(
                f"/reviews/{response.json()['id']}/like", headers=self.headers, name="POST /reviews/{id}/like"
            )

    @task(1)
    def my_favorites(self):
        if not self.headers:
            return
        self.client.get("/restaurants/favorites", headers=self.headers, name="GET /restaurants/favorites")


class BrowsingUser(HttpUser):
    """Simulates anonymous visitors on the public endpoints"""
    wait_time = between(2, 5)
    weight = 2

    @task(5)
    def popular(self):
        self.client.get("/restaurants/popular", name="GET /restaurants/popular (anonymous)")

    @task(3)
    def latest(self):
        self.client.get("/restaurants/latest", name="GET /restaurants/latest (anonymous)")

    @task(1)
    def get_health(self):
        """Health check - no auth required"""
        self.client.get("/health", name="GET /health (anonymous)")
