"""
Filter Expander

Turns an instance's configured build filters into concrete
(build configuration, branch) locators. Wildcard filters are enumerated
against the server on every cycle, so configurations and branches added or
removed on TeamCity are picked up without a restart.
"""

import asyncio

import httpx

from teamcity_exporter.collectors.teamcity_rest_client import TeamCityRESTClient
from teamcity_exporter.core.cycle_metrics import get_current_tracker
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.domain.builds import ResolvedLocator
from teamcity_exporter.domain.constants import scheduler_defaults
from teamcity_exporter.domain.instance import BuildFilter, BuildLocator, Instance
from teamcity_exporter.utils.error_handling import log_and_continue, log_and_return_default

logger = get_logger(__name__)


def default_filters() -> tuple[BuildFilter, ...]:
    """Single unconstrained filter: latest build of every configuration, every branch"""
    return (BuildFilter(name=scheduler_defaults.DEFAULT_FILTER_NAME, locator=BuildLocator()),)


def effective_filters(instance: Instance) -> tuple[BuildFilter, ...]:
    """Configured filters, or the synthesized default when none are configured"""
    return instance.build_filters or default_filters()


class FilterExpander:
    """Expands build filters into ResolvedLocators for one instance"""

    def __init__(self, client: TeamCityRESTClient, instance_name: str):
        self.client = client
        self.instance_name = instance_name

    async def expand(self, filters: tuple[BuildFilter, ...]) -> list[ResolvedLocator]:
        """
        Expand every filter concurrently.

        A failing filter contributes no locators; the others are unaffected.
        """
        results = await asyncio.gather(*(self.expand_filter(f) for f in filters))
        return [locator for locators in results for locator in locators]

    async def expand_filter(self, build_filter: BuildFilter) -> list[ResolvedLocator]:
        """
        Expand one filter into its Cartesian set of concrete locators.

        Returns:
            One ResolvedLocator per (configuration, branch) pair; [] if the
            configuration list could not be fetched
        """
        locator = build_filter.locator
        context = {"instance": self.instance_name, **build_filter.log_fields()}

        if locator.build_type:
            build_types = [locator.build_type]
        else:
            try:
                build_types = await self.client.get_build_types()
            except (httpx.HTTPError, KeyError, ValueError) as e:
                self._record_error()
                return log_and_return_default(
                    logger, e, context, [], "Build configuration listing", level="error"
                )

        per_type = await asyncio.gather(*(self._expand_build_type(build_filter, bt) for bt in build_types))
        resolved = [item for items in per_type for item in items]

        log_with_context(
            logger,
            "debug",
            "Expanded build filter",
            build_configurations=len(build_types),
            locators=len(resolved),
            **context,
        )
        return resolved

    async def _expand_build_type(self, build_filter: BuildFilter, build_type: str) -> list[ResolvedLocator]:
        locator = build_filter.locator

        if locator.branch:
            branches: list[str | None] = [locator.branch]
        else:
            try:
                names = await self.client.get_branches(build_type)
            except (httpx.HTTPError, KeyError, ValueError) as e:
                self._record_error()
                log_and_continue(
                    logger,
                    e,
                    {"instance": self.instance_name, "filter": build_filter.name, "build_type": build_type},
                    "Branch listing",
                    level="error",
                )
                return []
            # Configurations without VCS branches still report their latest build
            branches = list(names) or [None]

        return [
            ResolvedLocator(
                instance_name=self.instance_name,
                filter_name=build_filter.name,
                locator=locator.with_target(build_type, branch),
            )
            for branch in branches
        ]

    @staticmethod
    def _record_error() -> None:
        tracker = get_current_tracker()
        if tracker:
            tracker.record_error()
