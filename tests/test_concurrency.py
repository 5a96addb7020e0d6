"""
Blocking work inside a request must not hold up other requests on the event loop.
"""

import asyncio
import os
import sys
import threading

import httpx


sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


def test_slow_login_does_not_stall_health_check(monkeypatch) -> None:
    import app as app_module

    released = threading.Event()
    finished = []

    def slow_authenticate(db, auth, username, password):
        # stands in for bcrypt verification; returns once the health check is served
        released.wait(timeout=5)
        finished.append("login")
        return "token"

    monkeypatch.setattr(app_module.user_service, "authenticate_user", slow_authenticate)

    async def scenario():
        transport = httpx.ASGITransport(app=app_module.app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            logins = [
                asyncio.ensure_future(client.post("/users/login", json={"username": "alice", "password": "secret1"}))
                for _ in range(3)
            ]
            await asyncio.sleep(0.1)
            health = await client.get("/health")
            finished.append("health")
            released.set()
            return health, await asyncio.gather(*logins)

    health, logins = asyncio.run(scenario())

    assert health.status_code == 200
    assert [resp.json() for resp in logins] == ["token"] * 3
    assert finished[0] == "health"
