"""
Build Resolver

Runs the TeamCity build search for one concrete locator.
"""

import httpx

from teamcity_exporter.collectors.teamcity_rest_client import TeamCityRESTClient
from teamcity_exporter.core.cycle_metrics import get_current_tracker
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.domain.builds import Build, ResolvedLocator
from teamcity_exporter.utils.error_handling import log_and_return_default

logger = get_logger(__name__)


class BuildResolver:
    """Resolves ResolvedLocators into Builds"""

    def __init__(self, client: TeamCityRESTClient):
        self.client = client

    async def resolve(self, resolved: ResolvedLocator) -> list[Build]:
        """
        Fetch the builds matching a locator.

        Args:
            resolved: Concrete locator with its filter/instance context

        Returns:
            Matching builds (usually one); [] if the search failed
        """
        locator_string = resolved.locator.to_locator_string()
        try:
            payload = await self.client.get_builds(locator_string)
            builds = [Build.from_api(item, resolved) for item in payload]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            tracker = get_current_tracker()
            if tracker:
                tracker.record_error()
            return log_and_return_default(
                logger,
                e,
                {**resolved.log_fields(), "locator": locator_string},
                [],
                "Build search",
                level="error",
            )

        if not builds:
            log_with_context(logger, "debug", "No builds matched locator", **resolved.log_fields())
        return builds
