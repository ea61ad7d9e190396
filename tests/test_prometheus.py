"""Tests for Prometheus metrics."""

import pytest
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from stream_ingest.api.app import create_app
from stream_ingest.api.middleware.prometheus import (
    normalize_endpoint,
    record_analysis_complete,
    record_analysis_start,
    record_ingest_attempt,
    record_ingest_bytes,
    record_keyframes,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestNormalizeEndpoint:
    """Test label normalization."""

    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/health", "/health"),
            ("/api/v1/status/ea95132c15732412d22c1476fa83f27a", "/api/v1/status/{uid}"),
            (
                "/api/v1/videos/ea95132c15732412d22c1476fa83f27a/token",
                "/api/v1/videos/{uid}/token",
            ),
            ("/api/v1/items/42", "/api/v1/items/{id}"),
        ],
    )
    def test_normalize(self, path, expected):
        assert normalize_endpoint(path) == expected


class TestRecorders:
    """Test the metric helper functions."""

    def test_ingest_attempts(self):
        labels = {"method": "copy", "status": "success"}
        before = sample("ingest_attempts_total", labels)

        record_ingest_attempt("copy")

        assert sample("ingest_attempts_total", labels) == before + 1

    def test_ingest_bytes_ignores_zero(self):
        before = sample("ingest_bytes_total")
        record_ingest_bytes(0)
        record_ingest_bytes(1024)
        assert sample("ingest_bytes_total") == before + 1024

    def test_analysis_run(self):
        """
        Given a run is started and then fails
        When both are recorded
        Then the in-progress gauge returns and the failure is labelled by code
        """
        gauge = sample("analysis_in_progress")
        failed = sample("analysis_runs_total", {"status": "NO_KEYFRAMES"})

        record_analysis_start()
        assert sample("analysis_in_progress") == gauge + 1
        record_analysis_complete(1.5, status="NO_KEYFRAMES")

        assert sample("analysis_in_progress") == gauge
        assert sample("analysis_runs_total", {"status": "NO_KEYFRAMES"}) == failed + 1

    def test_keyframes(self):
        ok = sample("keyframes_validated_total", {"result": "ok"})
        rejected = sample("keyframes_validated_total", {"result": "rejected"})

        record_keyframes(6, 2)

        assert sample("keyframes_validated_total", {"result": "ok"}) == ok + 6
        assert sample("keyframes_validated_total", {"result": "rejected"}) == rejected + 2


class TestMetricsEndpoint:
    """Test the /metrics endpoint."""

    def test_disabled_by_default(self, client: TestClient):
        assert client.get("/metrics").status_code == 404

    def test_requests_are_counted(self, configure):
        configure(prometheus_enabled="true")
        labels = {"method": "GET", "endpoint": "/health/live", "status": "200"}
        before = sample("api_requests_total", labels)

        with TestClient(create_app()) as test_client:
            test_client.get("/health/live")
            response = test_client.get("/metrics")

        assert response.status_code == 200
        assert "api_requests_total" in response.text
        assert 'app_info{version="0.3.0"} 1.0' in response.text
        assert sample("api_requests_total", labels) == before + 1
