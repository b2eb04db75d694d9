#!/usr/bin/env python3
"""
Cycle Pipeline

One scrape cycle of one instance:

    filters --expand--> locators --resolve--> builds --fetch--> statistics --transform--> store

Stages are connected by asyncio queues. A fan-out stage reads its inbox until
the close marker, starts one task per item, waits for every task it started
and only then closes its outbox. The next stage therefore sees "all producers
finished" as an explicit marker: closing earlier would drop items, never
closing would hang the cycle. Failed units are logged and contribute nothing;
they never stop sibling tasks or the stage.

Each filter is timed separately: its finish-time and duration gauges are
written as soon as the last unit derived from it completes.

Outbound requests are bounded by the REST client's admission gate, so
spawning one task per unit does not exceed the instance's concurrency limit.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from teamcity_exporter.collectors.build_resolver import BuildResolver
from teamcity_exporter.collectors.filter_expander import FilterExpander, effective_filters
from teamcity_exporter.collectors.statistics_fetcher import StatisticsFetcher
from teamcity_exporter.collectors.statistics_transformer import StatisticsTransformer
from teamcity_exporter.collectors.teamcity_rest_client import TeamCityRESTClient
from teamcity_exporter.core.cycle_metrics import CycleTracker, get_current_tracker, record_filter_scrape, track_cycle
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.builds import Build, BuildStatistics, ResolvedLocator
from teamcity_exporter.domain.instance import BuildFilter, Instance

logger = get_logger(__name__)

# Close marker put on a queue once every producer of that queue has finished
CLOSED = object()

Worker = Callable[[Any], Awaitable[Iterable[Any]]]


def _filter_name(item: BuildFilter | ResolvedLocator | Build | BuildStatistics) -> str:
    """Name of the build filter a pipeline item was derived from"""
    if isinstance(item, BuildFilter):
        return item.name
    if isinstance(item, ResolvedLocator):
        return item.filter_name
    if isinstance(item, Build):
        return item.source.filter_name
    return item.build.source.filter_name


class CyclePipeline:
    """Runs expand → resolve → fetch → transform for one instance and one tick"""

    def __init__(
        self,
        client: TeamCityRESTClient,
        instance: Instance,
        store: FingerprintStore,
        transformer: StatisticsTransformer | None = None,
    ):
        self.instance = instance
        self.store = store
        self.expander = FilterExpander(client, instance.name)
        self.resolver = BuildResolver(client)
        self.fetcher = StatisticsFetcher(client)
        self.transformer = transformer or StatisticsTransformer()

    async def run(self) -> CycleTracker:
        """
        Run one complete cycle.

        Returns once every stage has drained; the instance's duration and
        finish-time samples are in the store by then.

        Returns:
            The cycle's tracker (counts of locators, builds, samples, errors and
            per-filter progress)
        """
        with track_cycle(self.instance.name, self.store) as tracker:
            filters = effective_filters(self.instance)
            tracker.filter_count = len(filters)
            log_with_context(
                logger,
                "debug",
                "Starting metrics collection",
                instance=self.instance.name,
                cycle_id=tracker.cycle_id,
                filters_number=len(filters),
            )

            filter_queue: asyncio.Queue = asyncio.Queue()
            locator_queue: asyncio.Queue = asyncio.Queue()
            build_queue: asyncio.Queue = asyncio.Queue()
            statistics_queue: asyncio.Queue = asyncio.Queue()

            for build_filter in filters:
                tracker.start_filter(build_filter.name)
                filter_queue.put_nowait(build_filter)
            filter_queue.put_nowait(CLOSED)

            await asyncio.gather(
                self._fan_out("expand", filter_queue, locator_queue, self._expand),
                self._fan_out("resolve", locator_queue, build_queue, self._resolve),
                self._fan_out("fetch", build_queue, statistics_queue, self._fetch),
                self._transform(statistics_queue, tracker),
            )

        return tracker

    async def _fan_out(self, stage: str, inbox: asyncio.Queue, outbox: asyncio.Queue, worker: Worker) -> None:
        """
        Start one task per inbox item; close outbox after all of them finished.

        The outbox is closed on every exit path, including cancellation.
        """
        tasks: list[asyncio.Task] = []
        try:
            while True:
                item = await inbox.get()
                if item is CLOSED:
                    break
                tasks.append(asyncio.create_task(self._run_unit(stage, worker, item, outbox)))
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            outbox.put_nowait(CLOSED)

    async def _run_unit(self, stage: str, worker: Worker, item: Any, outbox: asyncio.Queue) -> None:
        results: list[Any] = []
        try:
            results = list(await worker(item))
        except Exception as e:
            # Stage workers log their expected failures; this catches the unexpected ones
            logger.error(
                f"Unexpected failure in {stage} stage: {e}",
                exc_info=True,
                extra={"extra_fields": {"instance": self.instance.name, "stage": stage, "item": repr(item)}},
            )

        for result in results:
            outbox.put_nowait(result)

        # Count derived units before completing this one
        filter_name = _filter_name(item)
        tracker = get_current_tracker()
        if tracker:
            tracker.add_filter_units(filter_name, len(results))
        self._complete_filter_unit(filter_name)

    def _complete_filter_unit(self, filter_name: str) -> None:
        tracker = get_current_tracker()
        if tracker is None:
            return

        progress = tracker.complete_filter_unit(filter_name)
        if progress is None:
            return

        record_filter_scrape(self.store, self.instance.name, progress)
        log_with_context(
            logger,
            "debug",
            "Finished build filter",
            instance=self.instance.name,
            cycle_id=tracker.cycle_id,
            filter=filter_name,
            duration=round(progress.duration_seconds, 3),
        )

    async def _expand(self, build_filter: BuildFilter) -> list[ResolvedLocator]:
        locators = await self.expander.expand_filter(build_filter)
        tracker = get_current_tracker()
        if tracker:
            tracker.locator_count += len(locators)
        return locators

    async def _resolve(self, locator: ResolvedLocator) -> list[Build]:
        builds = await self.resolver.resolve(locator)
        tracker = get_current_tracker()
        if tracker:
            tracker.build_count += len(builds)
        return builds

    async def _fetch(self, build: Build) -> list[BuildStatistics]:
        statistics = await self.fetcher.fetch(build)
        return [statistics] if statistics is not None else []

    async def _transform(self, inbox: asyncio.Queue, tracker: CycleTracker) -> None:
        """Sink stage: write samples until the fetch stage closes its outbox"""
        while True:
            statistics = await inbox.get()
            if statistics is CLOSED:
                return
            try:
                tracker.sample_count += self.transformer.transform_all(statistics, self.store)
            except Exception as e:
                tracker.record_error()
                logger.error(
                    f"Unexpected failure in transform stage: {e}",
                    exc_info=True,
                    extra={"extra_fields": statistics.build.log_fields()},
                )
            self._complete_filter_unit(statistics.build.source.filter_name)
