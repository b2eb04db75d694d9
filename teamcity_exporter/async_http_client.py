"""
Async Secure HTTP Client Wrapper

Pooled httpx client shared by all requests a scheduler sends to one TeamCity
server. Every request is verified, time-limited and identified by the
exporter's User-Agent.

Usage:
    from teamcity_exporter.async_http_client import AsyncSecureHTTPClient

    async with AsyncSecureHTTPClient(max_connections=10, timeout=30) as client:
        response = await client.get(url, headers=auth_headers)

Security Features:
    - SSL verification always enabled (verify=True)
    - Every request carries a timeout
    - Connection pool sized to the instance's concurrency limit
"""

import httpx

from teamcity_exporter import __version__

USER_AGENT = f"teamcity-exporter/{__version__}"


class AsyncSecureHTTPClient:
    """
    Async HTTP client with enforced SSL verification and connection pooling.

    Default headers ask for JSON; per-request headers (authentication) are
    merged on top by httpx.
    """

    DEFAULT_TIMEOUT = 30  # seconds
    DEFAULT_MAX_CONNECTIONS = 10
    DEFAULT_MAX_KEEPALIVE = 10
    DEFAULT_HEADERS = {"Accept": "application/json", "User-Agent": USER_AGENT}

    def __init__(
        self,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        max_keepalive_connections: int = DEFAULT_MAX_KEEPALIVE,
        timeout: float = DEFAULT_TIMEOUT,
        http2: bool = True,
    ):
        """
        Args:
            max_connections: Pool size, normally the instance's concurrency limit
            max_keepalive_connections: Idle connections kept open (capped at max_connections)
            timeout: Timeout in seconds for connect/read/write/pool
            http2: Negotiate HTTP/2 when the server supports it
        """
        self.limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=min(max_keepalive_connections, max_connections),
        )
        self.timeout = httpx.Timeout(timeout)
        self.http2 = http2
        self.client: httpx.AsyncClient | None = None

    @property
    def closed(self) -> bool:
        return self.client is None

    async def __aenter__(self) -> "AsyncSecureHTTPClient":
        self.client = httpx.AsyncClient(
            limits=self.limits,
            timeout=self.timeout,
            headers=self.DEFAULT_HEADERS,
            verify=True,  # CRITICAL: Force SSL verification
            http2=self.http2,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, *args):
        if self.client:
            await self.client.aclose()
            self.client = None

    async def get(self, url: str, **kwargs) -> httpx.Response:
        """
        GET a URL through the pooled client.

        Raises:
            RuntimeError: If used outside `async with`
            httpx.RequestError: For network errors and timeouts
        """
        if self.client is None:
            raise RuntimeError("Client not initialized. Use 'async with AsyncSecureHTTPClient()' context manager")

        kwargs.setdefault("timeout", self.timeout)
        return await self.client.get(url, **kwargs)
