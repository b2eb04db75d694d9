"""
Statistics Fetcher

Retrieves the statistics property list of one build.
"""

import httpx

from teamcity_exporter.collectors.teamcity_rest_client import TeamCityRESTClient
from teamcity_exporter.core.cycle_metrics import get_current_tracker
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.domain.builds import Build, BuildStatistics, StatisticsProperty
from teamcity_exporter.utils.error_handling import log_and_return_default

logger = get_logger(__name__)


class StatisticsFetcher:
    """Fetches BuildStatistics for Builds"""

    def __init__(self, client: TeamCityRESTClient):
        self.client = client

    async def fetch(self, build: Build) -> BuildStatistics | None:
        """
        Fetch statistics for a build.

        Returns:
            BuildStatistics with properties in server order; None if the
            request failed (the build's web URL is logged for follow-up)
        """
        try:
            payload = await self.client.get_build_statistics(build.id)
            properties = [StatisticsProperty(name=item["name"], value=str(item.get("value", ""))) for item in payload]
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
            tracker = get_current_tracker()
            if tracker:
                tracker.record_error()
            return log_and_return_default(logger, e, build.log_fields(), None, "Statistics fetch", level="error")

        if not properties:
            log_with_context(logger, "debug", "No metrics collected for build", **build.log_fields())
        else:
            log_with_context(
                logger,
                "debug",
                "Successfully collected statistics for build",
                metrics_collected=len(properties),
                **build.log_fields(),
            )
        return BuildStatistics(build=build, properties=properties)
