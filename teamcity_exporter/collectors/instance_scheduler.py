#!/usr/bin/env python3
"""
Instance Scheduler

Per-instance timer loop. The first tick fires immediately at startup, later
ticks follow the instance's scrape interval. Every tick:

1. Checks the server (connectivity and credentials). On failure the instance
   is marked down (teamcity_instance_status=0) and the tick ends; the next
   tick checks again.
2. Marks the instance up and runs one CyclePipeline.

With overlap_policy "allow" a tick starts a new cycle even while earlier
cycles are still running. With "skip" the tick is dropped until the running
cycle finishes.

Usage:
    scheduler = InstanceScheduler(instance, store)
    task = asyncio.create_task(scheduler.run())
    ...
    scheduler.stop()
    await task
"""

import asyncio

from teamcity_exporter.collectors.cycle_pipeline import CyclePipeline
from teamcity_exporter.collectors.teamcity_rest_client import TeamCityAPIError, TeamCityRESTClient
from teamcity_exporter.core.cycle_metrics import record_instance_status
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.instance import Instance

logger = get_logger(__name__)


class InstanceScheduler:
    """
    Drives scrape cycles for one instance.

    Attributes:
        instance: Instance being scraped
        store: Shared fingerprint store
        client: REST client, opened for the lifetime of run()
        tick_count: Ticks fired so far
        skipped_ticks: Ticks dropped by the "skip" overlap policy
        last_status: Result of the latest status check (None before the first one)
    """

    def __init__(
        self,
        instance: Instance,
        store: FingerprintStore,
        client: TeamCityRESTClient | None = None,
    ):
        self.instance = instance
        self.store = store
        self.client = client or TeamCityRESTClient.from_instance(instance)
        self.tick_count = 0
        self.skipped_ticks = 0
        self.last_status: bool | None = None
        self._cycles: set[asyncio.Task] = set()
        self._stopping = asyncio.Event()

    @property
    def running_cycles(self) -> int:
        return len(self._cycles)

    async def check_instance(self) -> bool:
        """
        Check the instance and record its up/down status sample.

        Returns:
            True if the instance is reachable and accepted the credentials
        """
        try:
            await self.client.check_status()
        except TeamCityAPIError as e:
            self.last_status = False
            record_instance_status(self.store, self.instance.name, up=False)
            log_with_context(
                logger,
                "error",
                f"Instance check failed: {e}",
                instance=self.instance.name,
                url=self.instance.url,
                error_type=type(e).__name__,
            )
            return False

        self.last_status = True
        record_instance_status(self.store, self.instance.name, up=True)
        return True

    async def run_once(self) -> bool:
        """
        Run one cycle: status check, then the full pipeline if the check succeeded.

        The client must already be open (run() opens it).

        Returns:
            True if the pipeline ran
        """
        if not await self.check_instance():
            return False

        await CyclePipeline(self.client, self.instance, self.store).run()
        return True

    async def run(self) -> None:
        """Tick until stop() is called; cancels in-flight cycles on exit"""
        loop = asyncio.get_running_loop()
        interval = float(self.instance.scrape_interval)

        log_with_context(logger, "info", "Starting instance scheduler", **self.instance.log_fields())

        async with self.client:
            next_tick = loop.time()
            try:
                while not self._stopping.is_set():
                    self._tick()

                    # Missed ticks are dropped, keeping the original cadence
                    next_tick += interval
                    while next_tick <= loop.time():
                        next_tick += interval

                    try:
                        await asyncio.wait_for(self._stopping.wait(), timeout=next_tick - loop.time())
                    except asyncio.TimeoutError:
                        pass
            finally:
                await self._cancel_cycles()

        log_with_context(logger, "info", "Instance scheduler stopped", instance=self.instance.name)

    def stop(self) -> None:
        self._stopping.set()

    def _tick(self) -> None:
        self.tick_count += 1

        if self.instance.overlap_policy == "skip" and self._cycles:
            self.skipped_ticks += 1
            log_with_context(
                logger,
                "warning",
                "Previous cycle still running, skipping tick",
                instance=self.instance.name,
                running_cycles=len(self._cycles),
            )
            return

        if self._cycles:
            log_with_context(
                logger,
                "debug",
                "Starting cycle while previous cycle is still running",
                instance=self.instance.name,
                running_cycles=len(self._cycles),
            )

        task = asyncio.create_task(self._run_cycle(), name=f"cycle-{self.instance.name}-{self.tick_count}")
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    async def _run_cycle(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            logger.error(
                f"Cycle for instance {self.instance.name} failed: {e}",
                exc_info=True,
                extra={"extra_fields": {"instance": self.instance.name}},
            )

    async def _cancel_cycles(self) -> None:
        cycles = list(self._cycles)
        for task in cycles:
            task.cancel()
        if cycles:
            await asyncio.gather(*cycles, return_exceptions=True)
