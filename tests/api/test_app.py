"""
HTTP Listener Tests

Tests the exporter's FastAPI application: metrics exposition, landing page,
health check and request ID middleware.
"""

import pytest
from fastapi.testclient import TestClient

from teamcity_exporter import __version__
from teamcity_exporter.api.app import create_app


@pytest.fixture
def client(registry, healthy_schedulers):
    """Create FastAPI test client."""
    return TestClient(create_app(registry, metrics_path="/metrics", schedulers=healthy_schedulers))


class TestMetricsEndpoint:
    """Test the Prometheus exposition endpoint"""

    def test_metrics_text_format(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "teamcity_build_duration{" in response.text
        assert "teamcity_instance_status{" in response.text

    def test_custom_metrics_path(self, registry):
        client = TestClient(create_app(registry, metrics_path="/teamcity/metrics"))

        assert client.get("/teamcity/metrics").status_code == 200
        assert client.get("/metrics").status_code == 404


class TestLandingPage:
    """Test the landing page"""

    def test_links_metrics_path(self, registry):
        client = TestClient(create_app(registry, metrics_path="/prom"))

        response = client.get("/")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert 'href="/prom"' in response.text
        assert __version__ in response.text


class TestHealthCheck:
    """Test the health endpoint"""

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == __version__
        assert data["instances"]["main"]["status"] == "up"
        assert data["instances"]["backup"]["status"] == "unknown"
        assert data["instances"]["main"]["ticks"] == 3

    def test_degraded_when_instance_down(self, registry, degraded_schedulers):
        client = TestClient(create_app(registry, schedulers=degraded_schedulers))

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["instances"]["backup"]["status"] == "down"

    def test_no_instances(self, registry):
        response = TestClient(create_app(registry)).get("/health")

        assert response.status_code == 200
        assert response.json()["instances"] == {}


class TestRequestID:
    """Test the request ID middleware"""

    def test_generated_when_missing(self, client):
        response = client.get("/health")

        assert len(response.headers["X-Request-ID"]) == 36

    def test_echoed_when_provided(self, client):
        response = client.get("/metrics", headers={"X-Request-ID": "scrape-42"})

        assert response.headers["X-Request-ID"] == "scrape-42"
