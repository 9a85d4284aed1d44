import json
import logging

from jose import jwt

from ideabox.config import settings
from ideabox.core.cache import InMemoryBackend


def test_read_root(client):
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == settings.PROJECT_NAME
    assert "version" in data


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestLoggingMiddleware:
    def test_response_time_header(self, client):
        resp = client.get("/")
        assert resp.headers["X-Response-Time"].endswith("ms")

    def test_successful_request_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="ideabox.access"):
            client.get("/")

        records = [r for r in caplog.records if r.name == "ideabox.access"]
        log_data = json.loads(records[-1].message)
        assert log_data["method"] == "GET"
        assert log_data["path"] == "/"
        assert log_data["status"] == 200
        assert "duration_ms" in log_data
        assert "client_ip" in log_data

    def test_4xx_logged_as_warning(self, client, caplog):
        with caplog.at_level(logging.WARNING, logger="ideabox.access"):
            client.delete("/api/admin/api-keys/nonexistent-id")

        records = [r for r in caplog.records if r.name == "ideabox.access" and r.levelno == logging.WARNING]
        assert json.loads(records[-1].message)["status"] == 404

    def test_sensitive_query_values_redacted(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="ideabox.access"):
            client.get("/api/admin/usage-logs", params={"timeframe": "all", "key": "AIza-leak"})

        records = [r for r in caplog.records if r.name == "ideabox.access"]
        log_data = json.loads(records[-1].message)
        assert "timeframe=all" in log_data["query"]
        assert "AIza-leak" not in log_data["query"]

    def test_user_id_logged(self, client, caplog):
        token = jwt.encode({"sub": "user-42"}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
        with caplog.at_level(logging.INFO, logger="ideabox.access"):
            client.get("/", headers={"Authorization": f"Bearer {token}"})

        records = [r for r in caplog.records if r.name == "ideabox.access"]
        assert json.loads(records[-1].message)["user_id"] == "user-42"


class TestInMemoryBackend:
    def setup_method(self):
        self.cache = InMemoryBackend()

    def test_set_and_get(self):
        self.cache.set("key1", "value1")
        assert self.cache.get("key1") == "value1"

    def test_get_missing_key(self):
        assert self.cache.get("nonexistent") is None

    def test_delete(self):
        self.cache.set("key1", "value1")
        self.cache.delete("key1")
        assert self.cache.get("key1") is None

    def test_ttl_expiration(self, monkeypatch):
        now = [1000.0]
        monkeypatch.setattr("ideabox.core.cache.time.time", lambda: now[0])
        self.cache.set("key1", "value1", ttl=10)
        assert self.cache.get("key1") == "value1"
        now[0] += 11
        assert self.cache.get("key1") is None

    def test_clear(self):
        self.cache.set("key1", "value1")
        self.cache.clear()
        assert self.cache.get("key1") is None
