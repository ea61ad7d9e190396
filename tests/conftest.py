"""Pytest fixtures and configuration.

This module provides:
- Test settings via environment variables
- An RSA signing key
- Routing stubs for the store API and external URLs (httpx.MockTransport)
- A fake OpenAI-compatible client
- FastAPI app and test client with dependency overrides
"""

import json
import os
from collections.abc import AsyncGenerator, Callable, Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi import FastAPI
from fastapi.testclient import TestClient

import stream_ingest.database.redis as redis_module
from stream_ingest.api.app import create_app
from stream_ingest.api.dependencies import (
    get_agent_provider,
    get_http_client,
    get_lease_manager_dep,
    get_stream_client,
)
from stream_ingest.core.config import Settings, get_settings
from stream_ingest.database.redis import LeaseManager
from stream_ingest.llm_agents.factory import LLMClientFactory
from stream_ingest.llm_agents.metadata_agent import MetadataAgent
from stream_ingest.stream.client import StreamClient
from stream_ingest.stream.signing import reset_token_issuer

# =============================================================================
# Test Configuration
# =============================================================================

TEST_ACCOUNT = "acc123"
TEST_API_TOKEN = "test-stream-token"
TEST_KEY_ID = "kid-test-0001"
TEST_UID = "ea95132c15732412d22c1476fa83f27a"
STORE_BASE = f"https://api.cloudflare.com/client/v4/accounts/{TEST_ACCOUNT}/stream"

VALID_ANALYSIS = {
    "title": "Making Fresh Pasta at Home",
    "description": "A step by step guide to hand-made tagliatelle.",
    "category": "Cooking",
    "tags": ["pasta", "cooking", "italian", "homemade", "recipe"],
    "content_rating": "safe",
    "language": "en",
    "mood": "Calm",
    "confidence": 0.87,
}

SAMPLE_VTT = """WEBVTT

1
00:00:00.000 --> 00:00:02.000
Hello "world"

2
00:00:02.000 --> 00:00:04.000 align:start
Second line
continues

00:00:04.000 --> 00:00:06.500
Third
"""


def envelope(result: Any, success: bool = True) -> dict[str, Any]:
    """Wrap a result the way the store API does."""
    return {"success": success, "errors": [], "messages": [], "result": result}


def video_object(
    uid: str = TEST_UID,
    ready: bool = True,
    duration: float = 30.0,
    state: str = "ready",
    meta: dict[str, str] | None = None,
) -> dict[str, Any]:
    """A store video object."""
    return {
        "uid": uid,
        "readyToStream": ready,
        "duration": duration,
        "status": {"state": state, "pctComplete": "100.000000" if ready else "40.5"},
        "playback": {"hls": f"https://videodelivery.net/{uid}/manifest/video.m3u8"}
        if ready
        else {},
        "thumbnail": f"https://videodelivery.net/{uid}/thumbnails/thumbnail.jpg",
        "meta": meta if meta is not None else {"name": "clip.mp4", "owner": "user-1"},
    }


# =============================================================================
# Routing stub
# =============================================================================


class RouteStub:
    """Canned responses for httpx.MockTransport, matched by method and URL.

    A route matches on the full URL first, then the path, then the path
    relative to the account's stream API base. Unmatched requests get a 404.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: list[httpx.Request] = []

    def on(
        self,
        method: str,
        target: str,
        status: int = 200,
        json_body: Any = None,
        content: bytes | str | None = None,
        headers: dict[str, str] | None = None,
        handler: Callable[[httpx.Request], httpx.Response] | None = None,
    ) -> "RouteStub":
        if handler is None:

            def handler(request: httpx.Request) -> httpx.Response:
                if json_body is not None:
                    return httpx.Response(status, json=json_body, headers=headers)
                return httpx.Response(status, content=content or b"", headers=headers)

        self.routes[(method.upper(), target)] = handler
        return self

    def _relative(self, request: httpx.Request) -> str:
        path = request.url.path
        marker = f"/accounts/{TEST_ACCOUNT}/stream"
        if marker in path:
            return path.split(marker, 1)[1]
        return path

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        method = request.method.upper()
        for key in (str(request.url), request.url.path, self._relative(request)):
            handler = self.routes.get((method, key))
            if handler is not None:
                return handler(request)
        return httpx.Response(404, json={"success": False, "errors": [{"message": "not found"}]})

    def count(self, method: str, target: str) -> int:
        method = method.upper()
        return sum(
            1
            for r in self.calls
            if r.method == method
            and target in (str(r.url), r.url.path, self._relative(r))
        )

    def bodies(self, method: str, target: str) -> list[Any]:
        method = method.upper()
        return [
            json.loads(r.content)
            for r in self.calls
            if r.method == method and target in (str(r.url), r.url.path, self._relative(r))
        ]

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def store_client(self) -> StreamClient:
        return StreamClient(
            account_id=TEST_ACCOUNT,
            api_token=TEST_API_TOKEN,
            record_backoff=0,
            transport=self.transport,
        )

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)


# =============================================================================
# Settings Fixtures
# =============================================================================


def reset_caches() -> None:
    get_settings.cache_clear()
    reset_token_issuer()
    LLMClientFactory.reset_client()
    redis_module._lease_manager = None


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def rsa_private_pem(rsa_private_key: rsa.RSAPrivateKey) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(autouse=True)
def test_env(rsa_private_pem: str) -> Generator[dict[str, str], None, None]:
    """Isolated settings for every test."""
    env = {
        "STREAM_ACCOUNT_ID": TEST_ACCOUNT,
        "STREAM_API_TOKEN": TEST_API_TOKEN,
        "STREAM_REQUIRE_SIGNED_URLS": "false",
        "SIGNING_KEY_ID": TEST_KEY_ID,
        "SIGNING_KEY_PEM": rsa_private_pem,
        "LLM_API_KEY": "test-llm-key",
        "RECORD_FETCH_BACKOFF": "0",
        "REDIS_ENABLED": "false",
        "RATE_LIMIT_ENABLED": "false",
        "PROMETHEUS_ENABLED": "false",
        "AUTH_REQUIRE_KEY": "false",
        "AUTH_REQUIRE_SESSION": "false",
        "IDENTITY_PROVIDER_URL": "",
        "WEBHOOK_SECRET": "",
        "API_KEYS": "",
        "API_KEY": "",
        "LOG_LEVEL": "WARNING",
    }
    with patch.dict(os.environ, env, clear=False):
        reset_caches()
        yield env
    reset_caches()


@pytest.fixture
def configure(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Settings]:
    """Override settings for one test, e.g. ``configure(webhook_secret="s")``."""

    def _configure(**values: Any) -> Settings:
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), str(value))
        reset_caches()
        return get_settings()

    return _configure


@pytest.fixture
def settings() -> Settings:
    return get_settings()


# =============================================================================
# Stub Fixtures
# =============================================================================


@pytest.fixture
def store_stub() -> RouteStub:
    return RouteStub()


@pytest.fixture
def http_stub() -> RouteStub:
    return RouteStub()


def fake_llm_client(content: str | None = None, error: Exception | None = None) -> MagicMock:
    """OpenAI-compatible client returning ``content`` from chat completions."""
    client = MagicMock()
    if error is not None:
        client.chat.completions.create.side_effect = error
    else:
        client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=content))]
        )
    return client


@pytest.fixture
def llm_client() -> MagicMock:
    return fake_llm_client(json.dumps(VALID_ANALYSIS))


@pytest.fixture
def metadata_agent(llm_client: MagicMock, settings: Settings) -> MetadataAgent:
    return MetadataAgent(client=llm_client, settings=settings)


@pytest.fixture
def lease_manager() -> LeaseManager:
    return LeaseManager(enabled=False)


# =============================================================================
# Application Fixtures
# =============================================================================


@pytest.fixture
def app(
    store_stub: RouteStub,
    http_stub: RouteStub,
    llm_client: MagicMock,
    lease_manager: LeaseManager,
) -> Generator[FastAPI, None, None]:
    """FastAPI application with the store, external HTTP and model stubbed."""
    test_app = create_app()

    async def _store() -> AsyncGenerator[StreamClient, None]:
        client = store_stub.store_client()
        try:
            yield client
        finally:
            await client.aclose()

    async def _http() -> AsyncGenerator[httpx.AsyncClient, None]:
        async with http_stub.http_client() as client:
            yield client

    test_app.dependency_overrides[get_stream_client] = _store
    test_app.dependency_overrides[get_http_client] = _http
    test_app.dependency_overrides[get_agent_provider] = lambda: (
        lambda: MetadataAgent(client=llm_client, settings=get_settings())
    )
    test_app.dependency_overrides[get_lease_manager_dep] = lambda: lease_manager

    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client
