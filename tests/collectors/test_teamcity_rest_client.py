"""
Unit Tests for TeamCity REST Client

Test Coverage:
- Authentication header building and guest access
- URL construction
- Liveness/authentication check (401 retry, error mapping)
- Build configuration, branch, build and statistics APIs
- Admission gate (concurrency limit)
- API call counting through the cycle tracker
"""

import asyncio
import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from teamcity_exporter.collectors.teamcity_rest_client import (
    InstanceAuthenticationError,
    InstanceUnavailableError,
    TeamCityRESTClient,
)
from teamcity_exporter.core.cycle_metrics import track_cycle

HTTP_CLIENT_PATH = "teamcity_exporter.collectors.teamcity_rest_client.AsyncSecureHTTPClient"


def _client(**kwargs) -> TeamCityRESTClient:
    values = {"base_url": "https://tc.example.com", "username": "exporter", "password": "s3cr3t"}
    values.update(kwargs)
    return TeamCityRESTClient(**values)


class TestClientInitialization:
    """Test client initialization and configuration"""

    def test_init_strips_trailing_slash_from_url(self):
        client = _client(base_url="https://tc.example.com/")

        assert client.base_url == "https://tc.example.com"

    def test_init_with_empty_url_raises_error(self):
        with pytest.raises(ValueError, match="base_url is required"):
            _client(base_url="")

    def test_init_with_invalid_concurrency_limit(self):
        with pytest.raises(ValueError, match="concurrency_limit"):
            _client(concurrency_limit=0)

    def test_from_instance(self, sample_instance):
        client = TeamCityRESTClient.from_instance(sample_instance)

        assert client.base_url == "https://tc.example.com"
        assert client.concurrency_limit == 4
        assert client.username == "exporter"


class TestAuthHeader:
    """Test authentication header building"""

    def test_basic_auth_encoding(self):
        client = _client()

        encoded = client.auth_header["Authorization"].replace("Basic ", "")
        assert base64.b64decode(encoded).decode() == "exporter:s3cr3t"

    def test_authenticated_rest_root(self):
        assert _client().rest_root == "https://tc.example.com/app/rest"

    def test_guest_access_without_username(self):
        client = _client(username="", password="")

        assert client.auth_header == {}
        assert client.rest_root == "https://tc.example.com/guestAuth/app/rest"


class TestURLBuilding:
    """Test URL construction"""

    def test_locator_punctuation_kept_readable(self):
        url = _client()._build_url("builds", locator="buildType:(id:X),branch:(name:main),count:1")

        assert url == "https://tc.example.com/app/rest/builds?locator=buildType:(id:X),branch:(name:main),count:1"

    def test_none_params_filtered(self):
        url = _client()._build_url("buildTypes", fields=None)

        assert url == "https://tc.example.com/app/rest/buildTypes"

    def test_special_characters_escaped(self):
        url = _client()._build_url("builds", locator="branch:(name:feature/a b)")

        assert "feature%2Fa+b" in url


class TestContextManager:
    """Test client lifecycle"""

    @pytest.mark.asyncio
    async def test_request_outside_context_raises(self):
        with pytest.raises(RuntimeError, match="Client not initialized"):
            await _client().get_build_types()

    @pytest.mark.asyncio
    async def test_pool_sized_to_concurrency_limit(self, mock_http_client):
        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client) as http_class:
            async with _client(concurrency_limit=3, request_timeout=5.0):
                pass

        http_class.assert_called_once_with(max_connections=3, timeout=5.0, http2=True)
        mock_http_client.__aenter__.assert_awaited_once()
        mock_http_client.__aexit__.assert_awaited_once()


class TestCheckStatus:
    """Test the liveness/authentication check"""

    @pytest.mark.asyncio
    async def test_anonymous_success(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(200))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                await client.check_status()

        mock_http_client.get.assert_awaited_once()
        url = mock_http_client.get.call_args[0][0]
        headers = mock_http_client.get.call_args[1]["headers"]
        assert url == "https://tc.example.com/app/rest/server"
        assert "Authorization" not in headers

    @pytest.mark.asyncio
    async def test_401_retried_with_credentials(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(side_effect=[make_response(401), make_response(200)])

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                await client.check_status()

        assert mock_http_client.get.await_count == 2
        retry_headers = mock_http_client.get.call_args_list[1][1]["headers"]
        assert retry_headers["Authorization"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_401_with_bad_credentials(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(side_effect=[make_response(401), make_response(401)])

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(InstanceAuthenticationError, match="Unauthorized"):
                    await client.check_status()

    @pytest.mark.asyncio
    async def test_guest_checks_guest_root(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(200))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client(username="", password="") as client:
                await client.check_status()

        mock_http_client.get.assert_awaited_once()
        url = mock_http_client.get.call_args[0][0]
        headers = mock_http_client.get.call_args[1]["headers"]
        assert url == "https://tc.example.com/guestAuth/app/rest/server"
        assert "Authorization" not in headers

    @pytest.mark.asyncio
    async def test_guest_rejected_not_retried(self, mock_http_client, make_response):
        """Guest access disabled on the server: no credentials to retry with"""
        mock_http_client.get = AsyncMock(return_value=make_response(401))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client(username="", password="") as client:
                with pytest.raises(InstanceAuthenticationError):
                    await client.check_status()

        mock_http_client.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_403_is_authentication_error(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(403))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(InstanceAuthenticationError):
                    await client.check_status()

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(503))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(InstanceUnavailableError, match="HTTP 503"):
                    await client.check_status()

    @pytest.mark.asyncio
    async def test_connection_error_is_unavailable(self, mock_http_client):
        mock_http_client.get = AsyncMock(side_effect=httpx.ConnectError("Connection refused"))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(InstanceUnavailableError, match="Cannot reach"):
                    await client.check_status()

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, mock_http_client):
        mock_http_client.get = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(InstanceUnavailableError):
                    await client.check_status()


class TestBuildConfigurationAPIs:
    """Test build configuration and branch listing"""

    @pytest.mark.asyncio
    async def test_get_build_types(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(
            return_value=make_response(200, {"count": 2, "buildType": [{"id": "A_Build"}, {"id": "B_Build"}]})
        )

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                result = await client.get_build_types()

        assert result == ["A_Build", "B_Build"]
        assert mock_http_client.get.call_args[0][0] == "https://tc.example.com/app/rest/buildTypes?fields=buildType(id)"
        headers = mock_http_client.get.call_args[1]["headers"]
        assert headers["Accept"] == "application/json"
        assert "Authorization" in headers

    @pytest.mark.asyncio
    async def test_get_build_types_empty_server(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(200, {"count": 0}))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                assert await client.get_build_types() == []

    @pytest.mark.asyncio
    async def test_get_branches(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(
            return_value=make_response(
                200, {"branch": [{"name": "main", "default": True}, {"name": "dev"}, {"default": False}]}
            )
        )

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                result = await client.get_branches("Release_Build")

        assert result == ["main", "dev"]
        assert mock_http_client.get.call_args[0][0] == (
            "https://tc.example.com/app/rest/buildTypes/id:Release_Build/branches"
            "?locator=policy:ALL_BRANCHES&fields=branch(name,default)"
        )


class TestBuildAPIs:
    """Test build search and statistics"""

    @pytest.mark.asyncio
    async def test_get_builds(self, mock_http_client, make_response):
        builds = [{"id": 4521, "buildTypeId": "X", "branchName": "main", "webUrl": "https://tc/4521"}]
        mock_http_client.get = AsyncMock(return_value=make_response(200, {"count": 1, "build": builds}))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                result = await client.get_builds("buildType:(id:X),branch:(name:main),count:1")

        assert result == builds
        assert mock_http_client.get.call_args[0][0] == (
            "https://tc.example.com/app/rest/builds?locator=buildType:(id:X),branch:(name:main),count:1"
        )

    @pytest.mark.asyncio
    async def test_get_build_statistics(self, mock_http_client, make_response):
        properties = [{"name": "BuildDuration", "value": "81234"}, {"name": "TestCount", "value": "412"}]
        mock_http_client.get = AsyncMock(return_value=make_response(200, {"count": 2, "property": properties}))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                result = await client.get_build_statistics(4521)

        assert result == properties
        assert mock_http_client.get.call_args[0][0] == "https://tc.example.com/app/rest/builds/id:4521/statistics"

    @pytest.mark.asyncio
    async def test_http_error_raised(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(500))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with pytest.raises(httpx.HTTPStatusError):
                    await client.get_builds("count:1")

    @pytest.mark.asyncio
    async def test_unauthorized_logged(self, mock_http_client, make_response):
        mock_http_client.get = AsyncMock(return_value=make_response(401))

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            with patch("teamcity_exporter.collectors.teamcity_rest_client.logger") as mock_logger:
                async with _client() as client:
                    with pytest.raises(httpx.HTTPStatusError):
                        await client.get_build_statistics(1)

        mock_logger.error.assert_called_once()
        assert "401" in mock_logger.error.call_args[0][0]


class TestAdmissionGate:
    """Test that simultaneous requests never exceed the concurrency limit"""

    @pytest.mark.asyncio
    async def test_in_flight_requests_bounded(self, mock_http_client, make_response):
        in_flight = 0
        max_in_flight = 0

        async def slow_get(url, **kwargs):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return make_response(200, {"property": []})

        mock_http_client.get = AsyncMock(side_effect=slow_get)

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client(concurrency_limit=2) as client:
                await asyncio.gather(*(client.get_build_statistics(build_id) for build_id in range(8)))

        assert mock_http_client.get.await_count == 8
        assert max_in_flight == 2


class TestAPICallCounting:
    """Test that requests are counted by the active cycle tracker"""

    @pytest.mark.asyncio
    async def test_calls_counted_inside_cycle(self, mock_http_client, make_response, store):
        mock_http_client.get = AsyncMock(side_effect=[make_response(401), make_response(200), make_response(200)])

        with patch(HTTP_CLIENT_PATH, return_value=mock_http_client):
            async with _client() as client:
                with track_cycle("main", store) as tracker:
                    await client.check_status()
                    await client.get_build_types()

        assert tracker.api_call_count == 3
