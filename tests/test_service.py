"""End-to-end tests for the directory service HTTP API."""

from __future__ import annotations

import threading
import unittest

from fastapi.testclient import TestClient

from userdir.api import create_app
from userdir.config import Settings
from userdir.errors import ConflictError
from userdir.models import CallerIdentity
from userdir.operations import CreateUserRequest, UserDirectory
from userdir.store import InMemoryRecordStore


class DirectoryServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryRecordStore()
        self.settings = Settings(jwt_secret="service-tests-secret-key-with-enough-bytes")
        self.app = create_app(settings=self.settings, store=self.store)

    def _login(self, client: TestClient, login: str, password: str) -> dict[str, str]:
        response = client.post("/api/auth/login", json={"login": login, "password": password})
        self.assertEqual(response.status_code, 200, response.text)
        return {"Authorization": f"Bearer {response.json()['token']}"}

    def test_user_lifecycle(self) -> None:
        with TestClient(self.app) as client:
            admin = self._login(client, "Admin", "Admin123")

            created = client.post(
                "/api/users/create",
                json={"login": "alice", "password": "alice1", "name": "Alice", "gender": 0},
                headers=admin,
            )
            self.assertEqual(created.status_code, 200, created.text)

            alice = self._login(client, "alice", "alice1")
            renamed = client.put(
                "/api/users/update-1/info",
                json={"targetLogin": "alice", "name": "Alicia", "gender": 0, "birthday": "1990-05-05"},
                headers=alice,
            )
            self.assertEqual(renamed.status_code, 200, renamed.text)

            profile = client.get("/api/users/read/by-login/alice", headers=admin)
            self.assertEqual(profile.json()["name"], "Alicia")

            revoked = client.request(
                "DELETE", "/api/users/delete/alice", json={"softDelete": True}, headers=admin
            )
            self.assertEqual(revoked.status_code, 200, revoked.text)

            # Existing tokens survive revocation but the policy blocks the owner.
            blocked = client.put(
                "/api/users/update-1/password",
                json={"targetLogin": "alice", "newPassword": "other1"},
                headers=alice,
            )
            self.assertEqual(blocked.status_code, 403)
            self.assertEqual(
                blocked.json()["detail"], "Cannot change the password of a deleted user."
            )

            listing = client.get("/api/users/read/active", headers=admin)
            self.assertEqual([user["login"] for user in listing.json()["users"]], ["Admin"])

            restored = client.put("/api/users/restore/alice", headers=admin)
            self.assertEqual(restored.status_code, 200, restored.text)
            self.assertEqual(client.get("/api/users/read/self", headers=alice).status_code, 200)

            removed = client.request(
                "DELETE", "/api/users/delete/alice", json={"softDelete": False}, headers=admin
            )
            self.assertEqual(removed.status_code, 200, removed.text)
            self.assertEqual(client.get("/api/users/read/self", headers=alice).status_code, 401)
            self.assertEqual(len(self.store), 1)

    def test_concurrent_creates_keep_logins_unique(self) -> None:
        directory = UserDirectory(self.store)
        admin = CallerIdentity(login="Admin", admin=True)
        request = CreateUserRequest(login="racer", password="pass", name="Racer")
        outcomes: list[str] = []
        outcomes_lock = threading.Lock()
        start = threading.Barrier(8)

        def worker() -> None:
            start.wait()
            try:
                directory.create_user(admin, request)
                result = "created"
            except ConflictError:
                result = "conflict"
            with outcomes_lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(outcomes.count("created"), 1)
        self.assertEqual(outcomes.count("conflict"), 7)
        self.assertEqual([r.login for r in self.store.list_all()].count("racer"), 1)


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
