"""Tests for the generated OpenAPI schema."""

from fastapi.testclient import TestClient


class TestOpenAPISchema:
    """Test schema contents."""

    def test_schema_served(self, client: TestClient) -> None:
        """Test the schema lists every route.

        Given: The application
        When: GET /openapi.json
        Then: All public routes are documented
        """
        response = client.get("/openapi.json")

        assert response.status_code == 200
        paths = response.json()["paths"]
        for path in (
            "/api/v1/upload/direct",
            "/api/v1/upload/url",
            "/api/v1/status/{uid}",
            "/api/v1/videos/{uid}/token",
            "/api/v1/captions/generate/{uid}",
            "/api/v1/captions/{uid}",
            "/api/v1/analyze/{uid}",
            "/api/v1/webhook",
            "/health",
            "/health/ready",
        ):
            assert path in paths

    def test_security_schemes(self, client: TestClient) -> None:
        schemes = client.get("/openapi.json").json()["components"]["securitySchemes"]
        assert set(schemes) == {"ApiKeyAuth", "BearerAuth"}

    def test_operation_ids(self, client: TestClient) -> None:
        paths = client.get("/openapi.json").json()["paths"]
        assert paths["/api/v1/analyze/{uid}"]["post"]["operationId"] == "analyze_video"
        assert paths["/api/v1/upload/url"]["post"]["operationId"] == "ingest_from_url"

    def test_metrics_hidden(self, client: TestClient) -> None:
        assert "/metrics" not in client.get("/openapi.json").json()["paths"]
