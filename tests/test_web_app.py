"""Tests for the FastAPI web application."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient

from pastecn.config import AppConfig
from pastecn.storage.blob import InMemoryBlobStore, StorageError
from pastecn.web.app import create_app

BASE_URL = "https://pastecn.test"


class MutableClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock(now: datetime) -> MutableClock:
    return MutableClock(now)


@pytest.fixture
def analytics() -> MagicMock:
    return MagicMock()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(base_url=BASE_URL, session_secret="test-secret", unlock_max_attempts=3)


@pytest.fixture
def client(config: AppConfig, clock: MutableClock, analytics: MagicMock) -> TestClient:
    app = create_app(config, store=InMemoryBlobStore(), analytics=analytics, clock=clock)
    return TestClient(app)


def snippet_body(**overrides: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "name": "Button",
        "type": "component",
        "files": [{"path": "components/button.tsx", "content": "export const Button = () => null"}],
    }
    body.update(overrides)
    return body


def create(client: TestClient, **overrides: Any) -> Dict[str, Any]:
    response = client.post("/api/v1/snippets", json=snippet_body(**overrides))
    assert response.status_code == 201, response.text
    return response.json()


def tracked_events(analytics: MagicMock) -> list[str]:
    return [call.args[0] for call in analytics.track.call_args_list]


class TestCreateEndpoint:
    """Tests for POST /api/v1/snippets."""

    def test_create_public(self, client: TestClient) -> None:
        """Returns the ID and both URLs."""
        result = create(client)

        assert set(result) == {"id", "url", "registryUrl"}
        assert result["url"] == f"{BASE_URL}/p/{result['id']}"
        assert result["registryUrl"] == f"{BASE_URL}/r/{result['id']}"

    def test_create_protected_echoes_password(self, client: TestClient, password: str) -> None:
        """The password is returned once to its creator."""
        result = create(client, password=password)

        assert result["password"] == password

    def test_validation_error(self, client: TestClient) -> None:
        """Bad input returns 400 VALIDATION_ERROR."""
        response = client.post("/api/v1/snippets", json=snippet_body(files=[]))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert "At least one file" in response.json()["message"]

    def test_unsafe_path_rejected(self, client: TestClient) -> None:
        """Traversal paths never reach storage."""
        files = [{"path": "../../etc/passwd", "content": "x"}]

        response = client.post("/api/v1/snippets", json=snippet_body(files=files))

        assert response.status_code == 400
        assert "Invalid path" in response.json()["message"]

    def test_malformed_body(self, client: TestClient) -> None:
        """Schema errors use the same error shape."""
        response = client.post("/api/v1/snippets", json=snippet_body(files="nope"))

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_test_expiration_disabled(self, client: TestClient) -> None:
        """The 10s option is rejected unless enabled."""
        response = client.post("/api/v1/snippets", json=snippet_body(expiresIn="10s"))

        assert response.status_code == 400

    def test_id_collision(self, config: AppConfig, clock: MutableClock) -> None:
        """Exhausted ID retries surface as 409 ID_COLLISION."""
        store = MagicMock()
        store.put_if_absent.return_value = None
        client = TestClient(create_app(config, store=store, clock=clock))

        response = client.post("/api/v1/snippets", json=snippet_body())

        assert response.status_code == 409
        assert response.json()["code"] == "ID_COLLISION"
        assert store.put_if_absent.call_count == 3

    def test_emits_analytics(self, client: TestClient, analytics: MagicMock) -> None:
        """Creation is reported to the analytics sink."""
        create(client)

        assert "snippet_created" in tracked_events(analytics)

    def test_analytics_failure_ignored(self, client: TestClient, analytics: MagicMock) -> None:
        """A failing sink does not change the response."""
        analytics.track.side_effect = RuntimeError("down")

        response = client.post("/api/v1/snippets", json=snippet_body())

        assert response.status_code == 201


class TestRegistryEndpoint:
    """Tests for GET /r/{id}."""

    def test_public_snippet(self, client: TestClient) -> None:
        """Public items are served with an immutable cache policy."""
        snippet_id = create(client)["id"]

        response = client.get(f"/r/{snippet_id}")

        assert response.status_code == 200
        assert response.headers["cache-control"] == "public, max-age=31536000, immutable"
        body = response.json()
        assert body["$schema"] == "https://ui.shadcn.com/schema/registry-item.json"
        assert body["type"] == "registry:component"
        assert body["files"][0]["content"] == "export const Button = () => null"

    def test_json_suffix(self, client: TestClient) -> None:
        """A trailing .json is accepted."""
        snippet_id = create(client)["id"]

        assert client.get(f"/r/{snippet_id}.json").status_code == 200

    def test_protected_without_auth(self, client: TestClient, password: str) -> None:
        """Protected items return 401 with setup instructions and no content."""
        snippet_id = create(client, password=password)["id"]

        response = client.get(f"/r/{snippet_id}")

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == 'Bearer realm="pastecn"'
        body = response.json()
        assert body["code"] == "AUTH_REQUIRED"
        setup = body["details"]["setup"]
        assert setup["command"] == f"npx shadcn@latest add @pastecn/{snippet_id}"
        registry = setup["componentsJson"]["registries"]["@pastecn"]
        assert registry["url"] == f"{BASE_URL}/r/{{name}}"
        assert registry["headers"]["Authorization"] == "Bearer ${PASTECN_PASSWORD}"
        assert "export const Button" not in response.text

    def test_protected_with_bearer(self, client: TestClient, password: str) -> None:
        """The right bearer password unlocks a private response without the hash."""
        snippet_id = create(client, password=password)["id"]

        response = client.get(f"/r/{snippet_id}", headers={"Authorization": f"Bearer {password}"})

        assert response.status_code == 200
        assert response.headers["cache-control"] == "private, no-store"
        assert "passwordHash" not in response.text
        assert "$2b$" not in response.text

    def test_protected_wrong_bearer(self, client: TestClient, password: str) -> None:
        """A wrong password is 401 INVALID_PASSWORD."""
        snippet_id = create(client, password=password)["id"]

        response = client.get(f"/r/{snippet_id}", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_PASSWORD"

    def test_expired_is_not_found(self, client: TestClient, clock: MutableClock) -> None:
        """Expired items look exactly like missing ones."""
        snippet_id = create(client, expiresIn="1h")["id"]
        assert "max-age=3600" in client.get(f"/r/{snippet_id}").headers["cache-control"]

        clock.now += timedelta(hours=1)
        expired = client.get(f"/r/{snippet_id}")
        missing = client.get("/r/zzzzZZZZ")

        assert expired.status_code == missing.status_code == 404
        assert expired.json() == missing.json()

    @pytest.mark.parametrize("raw_id", ["short", "waytoolongid", "abc.defg"])
    def test_invalid_id(self, client: TestClient, raw_id: str) -> None:
        """Malformed IDs are 400 INVALID_ID."""
        response = client.get(f"/r/{raw_id}")

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ID"

    def test_storage_failure(self, config: AppConfig, clock: MutableClock) -> None:
        """Store outages are 500 INTERNAL_ERROR, not 404."""
        store = MagicMock()
        store.head.side_effect = StorageError("unreachable")
        client = TestClient(create_app(config, store=store, clock=clock))

        response = client.get("/r/abcdEFGH")

        assert response.status_code == 500
        assert response.json()["code"] == "INTERNAL_ERROR"


class TestSnippetApiEndpoint:
    """Tests for GET /api/v1/snippets/{id}."""

    def test_public_snippet(self, client: TestClient) -> None:
        """Returns the snippet model with inferred languages."""
        snippet_id = create(client)["id"]

        response = client.get(f"/api/v1/snippets/{snippet_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == snippet_id
        assert body["type"] == "component"
        assert body["isProtected"] is False
        assert body["files"][0]["language"] == "tsx"
        assert body["meta"] == {"primaryLanguage": "tsx", "fileCount": 1}

    def test_protected_requires_bearer(self, client: TestClient, password: str) -> None:
        """Protected snippets need the password."""
        snippet_id = create(client, password=password)["id"]

        anonymous = client.get(f"/api/v1/snippets/{snippet_id}")
        authorized = client.get(
            f"/api/v1/snippets/{snippet_id}", headers={"Authorization": f"Bearer {password}"}
        )

        assert anonymous.status_code == 401
        assert anonymous.json()["code"] == "AUTH_REQUIRED"
        assert anonymous.headers["www-authenticate"] == 'Bearer realm="pastecn"'
        assert authorized.status_code == 200
        assert authorized.json()["isProtected"] is True
        assert authorized.headers["cache-control"] == "private, no-store"

    def test_expired(self, client: TestClient, clock: MutableClock, analytics: MagicMock) -> None:
        """Expired snippets return NOT_FOUND."""
        snippet_id = create(client, expiresIn="24h")["id"]
        clock.now += timedelta(days=2)

        response = client.get(f"/api/v1/snippets/{snippet_id}")

        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"
        assert "snippet_get_error" in tracked_events(analytics)

    def test_invalid_id(self, client: TestClient) -> None:
        """Malformed IDs are rejected before any lookup."""
        assert client.get("/api/v1/snippets/bad").json()["code"] == "INVALID_ID"


class TestViewerEndpoints:
    """Tests for the metadata, unlock and content endpoints."""

    def unlock(self, client: TestClient, snippet_id: str, password: Optional[str]) -> Any:
        return client.post(f"/api/snippets/{snippet_id}/unlock", json={"password": password})

    def test_metadata_hides_content(self, client: TestClient, password: str) -> None:
        """Metadata is available without unlocking."""
        snippet_id = create(client, password=password)["id"]

        response = client.get(f"/api/snippets/{snippet_id}")

        assert response.status_code == 200
        assert response.json()["isProtected"] is True
        assert "export const Button" not in response.text

    def test_unlock_flow(self, client: TestClient, password: str) -> None:
        """Unlocking sets a per-snippet cookie that grants content access."""
        snippet_id = create(client, password=password)["id"]
        assert client.get(f"/api/snippets/{snippet_id}/content").status_code == 401

        response = self.unlock(client, snippet_id, password)

        assert response.status_code == 200
        assert response.json()["success"] is True
        set_cookie = response.headers["set-cookie"]
        assert f"unlock_{snippet_id}=" in set_cookie
        assert "HttpOnly" in set_cookie
        assert "samesite=lax" in set_cookie.lower()

        content = client.get(f"/api/snippets/{snippet_id}/content")
        assert content.status_code == 200
        assert content.headers["cache-control"] == "private, no-store"
        assert content.json()["content"] == [
            {"path": "components/button.tsx", "content": "export const Button = () => null"}
        ]
        assert client.get(f"/r/{snippet_id}").status_code == 200

    def test_cookie_is_scoped_to_snippet(self, client: TestClient, password: str) -> None:
        """Unlocking one snippet does not unlock another."""
        first = create(client, password=password)["id"]
        second = create(client, password=password)["id"]

        self.unlock(client, first, password)

        assert client.get(f"/api/snippets/{second}/content").status_code == 401

    def test_unlock_wrong_password(self, client: TestClient, password: str) -> None:
        """Wrong passwords are 401 and set no cookie."""
        snippet_id = create(client, password=password)["id"]

        response = self.unlock(client, snippet_id, "wrong")

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_PASSWORD"
        assert "set-cookie" not in response.headers

    def test_unlock_requires_password(self, client: TestClient, password: str) -> None:
        """An empty password is a validation error."""
        snippet_id = create(client, password=password)["id"]

        assert self.unlock(client, snippet_id, None).status_code == 400

    def test_unlock_public_snippet(self, client: TestClient) -> None:
        """Public snippets cannot be unlocked."""
        snippet_id = create(client)["id"]

        assert self.unlock(client, snippet_id, "anything").status_code == 404

    def test_unlock_rate_limited(self, client: TestClient, password: str) -> None:
        """Repeated failures are throttled per snippet and client."""
        snippet_id = create(client, password=password)["id"]
        for _ in range(3):
            assert self.unlock(client, snippet_id, "wrong").status_code == 401

        response = self.unlock(client, snippet_id, password)

        assert response.status_code == 429
        assert response.json()["code"] == "RATE_LIMITED"
        assert response.json()["message"] == "Too many attempts. Please try again in 15 minutes."
        assert int(response.headers["retry-after"]) > 0

    def test_public_content(self, client: TestClient) -> None:
        """Public content needs no session."""
        snippet_id = create(client)["id"]

        assert client.get(f"/api/snippets/{snippet_id}/content").status_code == 200

    def test_expired_content(self, client: TestClient, clock: MutableClock, password: str) -> None:
        """Unlocked sessions do not outlive the snippet."""
        snippet_id = create(client, password=password, expiresIn="1h")["id"]
        self.unlock(client, snippet_id, password)

        clock.now += timedelta(hours=2)

        assert client.get(f"/api/snippets/{snippet_id}/content").status_code == 404
        assert client.get(f"/api/snippets/{snippet_id}").status_code == 404


class SlowStore(InMemoryBlobStore):
    """In-memory store with a blocking read latency."""

    delay = 0.3

    def fetch(self, url: str) -> bytes:
        time.sleep(self.delay)
        return super().fetch(url)


class TestBlockingReads:
    """Store reads must not stall the event loop."""

    def test_concurrent_registry_reads(self, config: AppConfig, clock: MutableClock) -> None:
        """Slow reads for several snippets overlap instead of queueing."""
        app = create_app(config, store=SlowStore(), analytics=MagicMock(), clock=clock)
        snippet_ids = [create(TestClient(app))["id"] for _ in range(4)]

        async def fetch_all() -> list[httpx.Response]:
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                return await asyncio.gather(*(client.get(f"/r/{snippet_id}") for snippet_id in snippet_ids))

        started = time.perf_counter()
        responses = asyncio.run(fetch_all())
        elapsed = time.perf_counter() - started

        assert [response.status_code for response in responses] == [200] * 4
        assert elapsed < SlowStore.delay * 3


class TestContentLimit:
    """Tests for the stored document size limit."""

    def test_oversized_snippet_rejected(self, clock: MutableClock) -> None:
        """Bodies above the limit answer 413 VALIDATION_ERROR."""
        config = AppConfig(base_url=BASE_URL, session_secret="test-secret", max_content_bytes=512)
        client = TestClient(create_app(config, store=InMemoryBlobStore(), analytics=MagicMock(), clock=clock))
        files = [{"path": "big.ts", "content": "x" * 1024}]

        response = client.post("/api/v1/snippets", json=snippet_body(files=files))

        assert response.status_code == 413
        assert response.json() == {"code": "VALIDATION_ERROR", "message": "Content too large"}

    def test_small_snippet_accepted(self, clock: MutableClock) -> None:
        """Bodies under the limit are stored as usual."""
        config = AppConfig(base_url=BASE_URL, session_secret="test-secret", max_content_bytes=4096)
        client = TestClient(create_app(config, store=InMemoryBlobStore(), clock=clock))

        create(client)


class TestClientAddress:
    """Tests for how the unlock limiter identifies clients."""

    def unlock(self, client: TestClient, snippet_id: str, forwarded_for: str) -> Any:
        return client.post(
            f"/api/snippets/{snippet_id}/unlock",
            json={"password": "wrong"},
            headers={"X-Forwarded-For": forwarded_for},
        )

    def test_forwarded_header_ignored_by_default(self, client: TestClient, password: str) -> None:
        """Rotating X-Forwarded-For does not reset the limit."""
        snippet_id = create(client, password=password)["id"]
        for index in range(3):
            assert self.unlock(client, snippet_id, f"10.0.0.{index}").status_code == 401

        assert self.unlock(client, snippet_id, "10.0.0.99").status_code == 429

    def test_forwarded_header_trusted_when_enabled(self, clock: MutableClock, password: str) -> None:
        """Behind a trusted proxy each forwarded address has its own limit."""
        config = AppConfig(
            base_url=BASE_URL, session_secret="test-secret", unlock_max_attempts=3, trust_proxy_headers=True
        )
        client = TestClient(create_app(config, store=InMemoryBlobStore(), analytics=MagicMock(), clock=clock))
        snippet_id = create(client, password=password)["id"]
        for _ in range(3):
            assert self.unlock(client, snippet_id, "10.0.0.1").status_code == 401

        assert self.unlock(client, snippet_id, "10.0.0.1").status_code == 429
        assert self.unlock(client, snippet_id, "10.0.0.2").status_code == 401
