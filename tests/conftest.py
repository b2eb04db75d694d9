"""
Pytest configuration and shared fixtures

Provides common test fixtures for domain models, the metrics store and a
mocked TeamCity REST client.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from teamcity_exporter.collectors.teamcity_rest_client import TeamCityRESTClient
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.builds import Build, ResolvedLocator
from teamcity_exporter.domain.instance import BuildFilter, BuildLocator, Instance


# ===== HTTP Fixtures =====


@pytest.fixture
def make_response():
    """
    Factory for real httpx.Response objects bound to a request, so
    raise_for_status() behaves as in production.
    """

    def _make(status_code: int = 200, json_data=None, url: str = "https://tc.example.com/app/rest") -> httpx.Response:
        body = json_data if json_data is not None else {}
        return httpx.Response(status_code, json=body, request=httpx.Request("GET", url))

    return _make


@pytest.fixture
def make_http_error(make_response):
    """Factory for httpx.HTTPStatusError with a real response attached"""

    def _make(status_code: int) -> httpx.HTTPStatusError:
        response = make_response(status_code)
        return httpx.HTTPStatusError(f"HTTP {status_code}", request=response.request, response=response)

    return _make


# ===== Domain Model Fixtures =====


@pytest.fixture
def release_filter():
    """Filter pinned to one configuration, all branches"""
    return BuildFilter(name="release", locator=BuildLocator(build_type="Release_Build", status="SUCCESS"))


@pytest.fixture
def sample_instance(release_filter):
    """Provide an Instance with credentials and one filter"""
    return Instance(
        name="main",
        url="https://tc.example.com",
        username="exporter",
        password="s3cr3t-value",
        scrape_interval=60,
        concurrency_limit=4,
        build_filters=(release_filter,),
    )


@pytest.fixture
def sample_resolved_locator():
    """Provide a concrete locator for Release_Build on main"""
    return ResolvedLocator(
        instance_name="main",
        filter_name="release",
        locator=BuildLocator(build_type="Release_Build", branch="main", status="SUCCESS"),
    )


@pytest.fixture
def sample_build(sample_resolved_locator):
    """Provide a Build selected by the sample locator"""
    return Build(
        id=4521,
        build_type_id="Release_Build",
        branch_name="main",
        web_url="https://tc.example.com/viewLog.html?buildId=4521",
        source=sample_resolved_locator,
        number="118",
        status="SUCCESS",
    )


# ===== Component Fixtures =====


@pytest.fixture
def store():
    """Provide an empty FingerprintStore"""
    return FingerprintStore()


@pytest.fixture
def mock_client():
    """
    Provide a mocked TeamCityRESTClient.

    Async methods are AsyncMocks (spec detects them); tests set return
    values or side effects per method.
    """
    client = AsyncMock(spec=TeamCityRESTClient)
    client.check_status.return_value = None
    client.get_build_types.return_value = []
    client.get_branches.return_value = []
    client.get_builds.return_value = []
    client.get_build_statistics.return_value = []
    return client


@pytest.fixture
def mock_http_client():
    """Provide a mocked AsyncSecureHTTPClient usable as async context manager"""
    http_client = AsyncMock()
    http_client.__aenter__ = AsyncMock(return_value=http_client)
    http_client.__aexit__ = AsyncMock(return_value=None)
    return http_client
