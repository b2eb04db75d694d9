"""
Cycle Performance Tracking Module

Provides per-cycle health monitoring for the scrape pipeline:
    - CycleTracker: Counts API calls, builds, samples and errors for one cycle
    - track_cycle(): Context manager that times a cycle and records its status samples
    - get_current_tracker(): Access the running cycle's tracker from the REST client
    - record_instance_status(): Up/down gauge written by the scheduler
    - record_filter_scrape(): Per-filter finish time and duration gauges

The tracker lives in a ContextVar, so overlapping cycles of the same instance
(and cycles of different instances) each count their own calls.
"""

import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import Any

from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.constants import NAMESPACE, labels
from teamcity_exporter.domain.metrics import Label, MetricSample

logger = get_logger(__name__)

INSTANCE_STATUS = f"{NAMESPACE}_instance_status"
INSTANCE_LAST_SCRAPE_FINISH_TIME = f"{NAMESPACE}_instance_last_scrape_finish_time"
INSTANCE_LAST_SCRAPE_DURATION = f"{NAMESPACE}_instance_last_scrape_duration"
INSTANCE_LAST_SCRAPE_API_CALLS = f"{NAMESPACE}_instance_last_scrape_api_calls"
INSTANCE_LAST_SCRAPE_BUILDS = f"{NAMESPACE}_instance_last_scrape_builds"
INSTANCE_LAST_SCRAPE_SAMPLES = f"{NAMESPACE}_instance_last_scrape_samples"
INSTANCE_LAST_SCRAPE_ERRORS = f"{NAMESPACE}_instance_last_scrape_errors"
FILTER_LAST_SCRAPE_FINISH_TIME = f"{NAMESPACE}_filter_last_scrape_finish_time"
FILTER_LAST_SCRAPE_DURATION = f"{NAMESPACE}_filter_last_scrape_duration"

DOCUMENTATION = {
    INSTANCE_STATUS: "TeamCity instance status (1 = up, 0 = down or unauthorized)",
    INSTANCE_LAST_SCRAPE_FINISH_TIME: "TeamCity instance last scrape finish time (unix seconds)",
    INSTANCE_LAST_SCRAPE_DURATION: "TeamCity instance last scrape duration in seconds",
    INSTANCE_LAST_SCRAPE_API_CALLS: "TeamCity API requests made by the last scrape",
    INSTANCE_LAST_SCRAPE_BUILDS: "Builds whose statistics were requested by the last scrape",
    INSTANCE_LAST_SCRAPE_SAMPLES: "Samples written by the last scrape",
    INSTANCE_LAST_SCRAPE_ERRORS: "Failed requests or dropped statistics in the last scrape",
    FILTER_LAST_SCRAPE_FINISH_TIME: "TeamCity instance filter last scrape finish time (unix seconds)",
    FILTER_LAST_SCRAPE_DURATION: "TeamCity instance filter last scrape duration in seconds",
}

_current_tracker: ContextVar["CycleTracker | None"] = ContextVar("current_cycle_tracker", default=None)


def instance_sample(metric: str, instance_name: str, value: float) -> MetricSample:
    """Build an instance-level sample labeled only with exporter_instance"""
    return MetricSample(
        name=metric,
        labels=(Label(labels.INSTANCE, instance_name),),
        value=float(value),
        documentation=DOCUMENTATION.get(metric, metric),
    )


def record_instance_status(store: FingerprintStore, instance_name: str, up: bool) -> None:
    """Write the up (1) / down (0) gauge for an instance"""
    store.put(instance_sample(INSTANCE_STATUS, instance_name, 1 if up else 0))


@dataclass
class FilterProgress:
    """
    Outstanding work of one build filter within a cycle.

    `pending` counts units not yet finished: the expansion itself, then every
    locator, build and statistics item derived from the filter. The filter is
    complete when it drops to zero.
    """

    name: str
    start_time: float = field(default_factory=time.monotonic)
    pending: int = 1
    duration_seconds: float = 0.0
    finish_time: float = 0.0

    @property
    def done(self) -> bool:
        return self.pending <= 0

    def end(self) -> None:
        self.duration_seconds = time.monotonic() - self.start_time
        self.finish_time = time.time()


def record_filter_scrape(store: FingerprintStore, instance_name: str, progress: FilterProgress) -> None:
    """Write the finish time and duration gauges of a completed filter"""
    filter_labels = (Label(labels.INSTANCE, instance_name), Label(labels.FILTER, progress.name))
    values = {
        FILTER_LAST_SCRAPE_FINISH_TIME: progress.finish_time,
        FILTER_LAST_SCRAPE_DURATION: progress.duration_seconds,
    }
    for metric, value in values.items():
        store.put(
            MetricSample(name=metric, labels=filter_labels, value=float(value), documentation=DOCUMENTATION[metric])
        )


class CycleTracker:
    """
    Tracks one scrape cycle of one instance.

    Counters are updated from tasks of a single event loop, so no locking is
    needed.

    Attributes:
        instance_name: Instance being scraped
        cycle_id: Short random ID attached to the cycle's log lines
        start_time: Monotonic start timestamp (None before start())
        duration_seconds: Wall duration of the cycle
        finish_time: Unix timestamp of the cycle end
        api_call_count: TeamCity requests made
        filter_count: Filters expanded (configured or synthesized default)
        locator_count: Locators produced by the filter expander
        build_count: Builds handed to the statistics fetcher
        sample_count: Samples written to the store
        error_count: Failed requests plus dropped statistics
        filters: Per-filter progress, keyed by filter name

    Example:
        >>> tracker = CycleTracker("main")
        >>> tracker.start()
        >>> tracker.record_api_call()
        >>> tracker.end()
        >>> tracker.api_call_count
        1
    """

    def __init__(self, instance_name: str, cycle_id: str | None = None):
        self.instance_name = instance_name
        self.cycle_id = cycle_id or uuid.uuid4().hex[:12]
        self.start_time: float | None = None
        self.duration_seconds: float = 0.0
        self.finish_time: float = 0.0
        self.api_call_count = 0
        self.filter_count = 0
        self.locator_count = 0
        self.build_count = 0
        self.sample_count = 0
        self.error_count = 0
        self.filters: dict[str, FilterProgress] = {}

    def start(self) -> None:
        self.start_time = time.monotonic()

    def end(self) -> None:
        if self.start_time is not None:
            self.duration_seconds = time.monotonic() - self.start_time
        self.finish_time = time.time()

    def record_api_call(self) -> None:
        self.api_call_count += 1

    def record_error(self) -> None:
        self.error_count += 1

    def start_filter(self, filter_name: str) -> None:
        self.filters[filter_name] = FilterProgress(filter_name)

    def add_filter_units(self, filter_name: str, count: int) -> None:
        progress = self.filters.get(filter_name)
        if progress is not None:
            progress.pending += count

    def complete_filter_unit(self, filter_name: str) -> FilterProgress | None:
        """
        Mark one unit of a filter finished.

        Returns:
            The filter's progress when this was its last outstanding unit, else None
        """
        progress = self.filters.get(filter_name)
        if progress is None or progress.done:
            return None

        progress.pending -= 1
        if not progress.done:
            return None

        progress.end()
        return progress

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance": self.instance_name,
            "cycle_id": self.cycle_id,
            "duration": round(self.duration_seconds, 3),
            "api_calls": self.api_call_count,
            "filters": self.filter_count,
            "locators": self.locator_count,
            "builds": self.build_count,
            "samples": self.sample_count,
            "errors": self.error_count,
        }

    def record_into(self, store: FingerprintStore) -> None:
        """Write the cycle's instance-level samples to the store"""
        values = {
            INSTANCE_LAST_SCRAPE_FINISH_TIME: self.finish_time,
            INSTANCE_LAST_SCRAPE_DURATION: self.duration_seconds,
            INSTANCE_LAST_SCRAPE_API_CALLS: self.api_call_count,
            INSTANCE_LAST_SCRAPE_BUILDS: self.build_count,
            INSTANCE_LAST_SCRAPE_SAMPLES: self.sample_count,
            INSTANCE_LAST_SCRAPE_ERRORS: self.error_count,
        }
        for metric, value in values.items():
            store.put(instance_sample(metric, self.instance_name, value))


def get_current_tracker() -> CycleTracker | None:
    """
    Get the tracker of the cycle the calling task belongs to.

    Returns:
        Active tracker or None outside of a tracked cycle
    """
    return _current_tracker.get()


@contextmanager
def track_cycle(instance_name: str, store: FingerprintStore) -> Generator[CycleTracker, None, None]:
    """
    Time a scrape cycle and record its instance-level samples on exit.

    Tasks created inside the block inherit the tracker through the ContextVar.
    Samples are recorded whether the cycle succeeds or raises.

    Example:
        >>> async def cycle():
        ...     with track_cycle("main", store) as tracker:
        ...         await pipeline.run()
    """
    tracker = CycleTracker(instance_name)
    token = _current_tracker.set(tracker)
    tracker.start()

    try:
        yield tracker
        tracker.end()
        log_with_context(logger, "debug", "Successfully collected metrics for instance", **tracker.to_dict())
    except BaseException as e:
        tracker.end()
        if not isinstance(e, Exception):
            raise
        logger.error(
            "Cycle failed",
            exc_info=True,
            extra={"extra_fields": {**tracker.to_dict(), "error": str(e), "error_type": type(e).__name__}},
        )
        raise
    finally:
        tracker.record_into(store)
        _current_tracker.reset(token)
