"""Tests for the administrative cache endpoints."""

from fastapi.testclient import TestClient

from fleetdesk.cache.keys import CacheKeys


def seed(client: TestClient) -> None:
    store = client.app.state.cache
    store.set(CacheKeys.vehicles(), [])
    store.set(CacheKeys.vehicle("v1"), {})
    store.set(CacheKeys.vehicle("v2"), {})
    store.set(CacheKeys.booking("b1"), {})


class TestCacheStats:
    """Test GET /admin/cache/stats."""

    def test_stats(self, client: TestClient) -> None:
        seed(client)
        client.app.state.cache.get(CacheKeys.vehicle("v1"))

        response = client.get("/admin/cache/stats")

        assert response.status_code == 200
        body = response.json()
        assert body["size"] == 4
        assert body["active"] == 4
        assert body["hits"] == 1
        assert body["max_size"] == client.app.state.settings.cache_max_size
        keys = {info["key"]: info for info in body["keys"]}
        assert keys["vehicle:v1"]["hit_count"] == 1
        assert "vehicle" in keys["vehicle:v1"]["tags"]


class TestCacheKeysListing:
    """Test GET /admin/cache/keys."""

    def test_pattern(self, client: TestClient) -> None:
        seed(client)
        response = client.get("/admin/cache/keys", params={"pattern": "vehicle:*"})
        assert sorted(response.json()) == ["vehicle:v1", "vehicle:v2"]

    def test_limit(self, client: TestClient) -> None:
        seed(client)
        response = client.get("/admin/cache/keys", params={"pattern": "vehicle:*", "limit": 1})
        assert len(response.json()) == 1

    def test_match_all_rejected(self, client: TestClient) -> None:
        response = client.get("/admin/cache/keys", params={"pattern": "*"})
        assert response.status_code == 400
        assert response.json()["messages"][0]["code"] == "InvalidPattern"


class TestCacheClear:
    """Test clearing and pattern invalidation."""

    def test_clear_everything(self, client: TestClient) -> None:
        seed(client)
        response = client.post("/admin/cache/clear")

        assert response.status_code == 200
        assert response.json()["deleted_count"] == 4
        assert response.json()["pattern"] is None
        assert len(client.app.state.cache) == 0

    def test_clear_by_pattern(self, client: TestClient) -> None:
        seed(client)
        response = client.post("/admin/cache/clear", json={"pattern": "vehicle:*"})

        assert response.json()["deleted_count"] == 2
        assert CacheKeys.booking("b1") in client.app.state.cache

    def test_invalidate_by_pattern(self, client: TestClient) -> None:
        seed(client)
        response = client.delete("/admin/cache/invalidate", params={"pattern": "booking:*"})

        assert response.status_code == 200
        assert response.json() == {
            "pattern": "booking:*",
            "deleted_count": 1,
            "timestamp": response.json()["timestamp"],
        }

    def test_malformed_pattern_deletes_nothing(self, client: TestClient) -> None:
        seed(client)
        response = client.delete("/admin/cache/invalidate", params={"pattern": "vehicle:[ab"})

        assert response.status_code == 400
        assert len(client.app.state.cache) == 4

    def test_pattern_required(self, client: TestClient) -> None:
        response = client.delete("/admin/cache/invalidate")

        assert response.status_code == 422
        message = response.json()["messages"][0]
        assert message["code"] == "ValidationError"
        assert message["messageType"] == "Error"
        assert message["text"].startswith("query.pattern:")


class TestCacheAdminAuth:
    """Only super admins manage the cache."""

    def test_admin_forbidden(self, secured_client: TestClient, auth_headers) -> None:
        response = secured_client.get("/admin/cache/stats", headers=auth_headers("ADMIN"))
        assert response.status_code == 403

    def test_staff_forbidden(self, secured_client: TestClient, auth_headers) -> None:
        response = secured_client.post("/admin/cache/clear", headers=auth_headers("STAFF"))
        assert response.status_code == 403

    def test_super_admin_allowed(self, secured_client: TestClient, auth_headers) -> None:
        response = secured_client.get("/admin/cache/stats", headers=auth_headers("SUPER_ADMIN"))
        assert response.status_code == 200
