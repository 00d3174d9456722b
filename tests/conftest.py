"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import sys
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import httpx
import pytest

from courier.config import Settings
from courier.models import StoreTier, WebhookConfig
from courier.storage import FallbackStore, JsonFileStore
from courier.webhooks import (
    BackoffPolicy,
    DeliveryEngine,
    DeliveryLog,
    EventDispatcher,
    RetryQueue,
    SubscriberRegistry,
)

# Add tests directory to path so shared stubs can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


class FakeSubscriber:
    """In-process webhook endpoint backed by ``httpx.MockTransport``.

    Responds with ``status`` (or raises ``error``) and records every request
    so tests can inspect headers and bodies.
    """

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.error: Exception | None = None
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.routes.get(str(request.url), self.status))

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def subscriber() -> FakeSubscriber:
    return FakeSubscriber()


@pytest.fixture
async def http_client(subscriber: FakeSubscriber) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(transport=subscriber.transport()) as client:
        yield client


@pytest.fixture
def courier_settings(tmp_path: Path) -> Settings:
    """Local-only settings rooted in a temp directory."""
    return Settings(
        env="test",
        qdrant_url=None,
        local_store_dir=tmp_path / "store",
        retry_poll_interval_seconds=0.05,
        log_format="text",
    )


@pytest.fixture
def local_store(tmp_path: Path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "store")


@pytest.fixture
def emergency_store(tmp_path: Path) -> JsonFileStore:
    return JsonFileStore(tmp_path / "store", namespace="emergency", tier=StoreTier.EMERGENCY)


@pytest.fixture
def store(local_store: JsonFileStore) -> FallbackStore:
    return FallbackStore(local_store, name="test")


@pytest.fixture
def registry(store: FallbackStore) -> SubscriberRegistry:
    return SubscriberRegistry(store)


@pytest.fixture
def policy() -> BackoffPolicy:
    return BackoffPolicy(max_attempts=5, intervals_seconds=[60, 300, 900, 3600, 21600])


@pytest.fixture
def queue(store: FallbackStore, policy: BackoffPolicy) -> RetryQueue:
    return RetryQueue(store, policy)


@pytest.fixture
def delivery_log(store: FallbackStore, emergency_store: JsonFileStore) -> DeliveryLog:
    return DeliveryLog(store, emergency_store, retention=1000, emergency_retention=100)


@pytest.fixture
def engine(http_client: httpx.AsyncClient) -> DeliveryEngine:
    return DeliveryEngine(timeout_seconds=5.0, client=http_client)


@pytest.fixture
def dispatcher(
    registry: SubscriberRegistry,
    engine: DeliveryEngine,
    delivery_log: DeliveryLog,
    queue: RetryQueue,
) -> EventDispatcher:
    return EventDispatcher(registry, engine, delivery_log, queue, max_concurrent=4)


@pytest.fixture
def make_webhook(
    registry: SubscriberRegistry,
) -> Callable[..., object]:
    """Register a webhook in ``ws_1`` and return its config."""

    async def _make(
        url: str = "https://hooks.example.com/a",
        events: list[str] | None = None,
        enabled: bool = True,
        workspace_id: str = "ws_1",
        **kwargs: object,
    ) -> WebhookConfig:
        result = await registry.create_webhook(
            workspace_id,
            url=url,
            events=events if events is not None else ["page.created"],
            enabled=enabled,
            **kwargs,  # type: ignore[arg-type]
        )
        return result.unwrap()

    return _make
