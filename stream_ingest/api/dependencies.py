"""FastAPI dependencies for the API module.

Providers are plain functions so tests can swap them through
``app.dependency_overrides``.
"""

from collections.abc import AsyncGenerator, Callable

import httpx
from fastapi import Depends

from stream_ingest.core.config import Settings, get_settings
from stream_ingest.core.http_session import get_client
from stream_ingest.database.redis import LeaseManager, get_lease_manager
from stream_ingest.llm_agents.metadata_agent import MetadataAgent
from stream_ingest.pipeline.metadata import MetadataSynthesizer
from stream_ingest.stream.client import StreamClient
from stream_ingest.stream.signing import SignedTokenIssuer, get_token_issuer
from stream_ingest.stream.status import StatusReporter
from stream_ingest.stream.uploader import UploadOrchestrator


def get_settings_dep() -> Settings:
    """Dependency to get application settings."""
    return get_settings()


async def get_stream_client(
    settings: Settings = Depends(get_settings_dep),
) -> AsyncGenerator[StreamClient, None]:
    """Dependency yielding a store client, closed after the request.

    Raises:
        ConfigurationError: Store credentials are missing
    """
    client = StreamClient.from_settings(settings)
    try:
        yield client
    finally:
        await client.aclose()


def get_http_client(settings: Settings = Depends(get_settings_dep)) -> httpx.AsyncClient:
    """Dependency to get the shared client for external URLs (no store credentials)."""
    return get_client("external", timeout=settings.upstream_timeout_seconds)


def get_issuer_provider() -> Callable[[], SignedTokenIssuer]:
    """Dependency returning a lazy accessor for the token issuer."""
    return get_token_issuer


def get_issuer(
    provider: Callable[[], SignedTokenIssuer] = Depends(get_issuer_provider),
) -> SignedTokenIssuer:
    """Dependency to get the token issuer.

    Raises:
        ConfigurationError: Signing keys are missing or unparsable
    """
    return provider()


def get_agent_provider() -> Callable[[], MetadataAgent]:
    """Dependency returning a factory for the metadata agent."""
    return MetadataAgent


def get_lease_manager_dep() -> LeaseManager:
    """Dependency to get the lease manager."""
    return get_lease_manager()


def get_uploader(
    store: StreamClient = Depends(get_stream_client),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings_dep),
) -> UploadOrchestrator:
    return UploadOrchestrator.from_settings(store, http_client, settings)


def get_status_reporter(
    store: StreamClient = Depends(get_stream_client),
    issuer_provider: Callable[[], SignedTokenIssuer] = Depends(get_issuer_provider),
    settings: Settings = Depends(get_settings_dep),
) -> StatusReporter:
    return StatusReporter(
        store,
        issuer_provider,
        keyframe_count=settings.keyframe_count,
        thumbnail_width=settings.keyframe_width,
    )


def get_synthesizer(
    store: StreamClient = Depends(get_stream_client),
    http_client: httpx.AsyncClient = Depends(get_http_client),
    agent_provider: Callable[[], MetadataAgent] = Depends(get_agent_provider),
    lease_manager: LeaseManager = Depends(get_lease_manager_dep),
    issuer_provider: Callable[[], SignedTokenIssuer] = Depends(get_issuer_provider),
    settings: Settings = Depends(get_settings_dep),
) -> MetadataSynthesizer:
    return MetadataSynthesizer(
        store,
        http_client,
        agent_provider,
        lease_manager=lease_manager,
        issuer_provider=issuer_provider,
        settings=settings,
    )
