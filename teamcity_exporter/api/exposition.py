"""
Exposition Adapter

Custom prometheus_client collector reading the fingerprint store on every
scrape. Families are built fresh per scrape from the store snapshot, so the
registry never holds its own copy of the samples.

Usage:
    from prometheus_client import CollectorRegistry

    registry = CollectorRegistry()
    registry.register(StoreCollector(store))
"""

import time
import uuid
from collections.abc import Iterable, Iterator

from prometheus_client.core import GaugeMetricFamily, Metric

from teamcity_exporter import __version__
from teamcity_exporter.core.logging_config import get_logger
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.constants import NAMESPACE
from teamcity_exporter.domain.metrics import MetricSample

logger = get_logger(__name__)

START_TIME_METRIC = f"{NAMESPACE}_exporter_start_time_seconds"
BUILD_INFO_METRIC = f"{NAMESPACE}_exporter_build_info"


class StoreCollector:
    """
    Exposes every store entry as a gauge sample.

    Attributes:
        store: Fingerprint store written by the pipelines
        collector_id: Random ID distinguishing this collector (and process)
        start_time: Unix timestamp of collector creation
    """

    def __init__(self, store: FingerprintStore, collector_id: str | None = None):
        self.store = store
        self.collector_id = collector_id or uuid.uuid4().hex
        self.start_time = time.time()

    def _identity(self) -> GaugeMetricFamily:
        family = GaugeMetricFamily(
            START_TIME_METRIC,
            "Start time of the TeamCity exporter collector (unix seconds)",
            labels=["collector_id"],
        )
        family.add_metric([self.collector_id], self.start_time)
        return family

    def describe(self) -> Iterator[Metric]:
        """
        Yield the collector's identity descriptor.

        Store contents change between scrapes, so only the fixed identity
        metric is described; the registry then calls collect() at scrape time.
        """
        yield self._identity()

    def collect(self) -> Iterator[Metric]:
        """Yield identity, build info and the store snapshot grouped by metric name"""
        yield self._identity()

        build_info = GaugeMetricFamily(
            BUILD_INFO_METRIC,
            "TeamCity exporter version information",
            labels=["version"],
        )
        build_info.add_metric([__version__], 1.0)
        yield build_info

        snapshot = self.store.snapshot_all()
        logger.debug("Exposing store snapshot", extra={"extra_fields": {"samples": len(snapshot)}})
        yield from self.families(snapshot)

    @staticmethod
    def families(samples: Iterable[MetricSample]) -> list[Metric]:
        """
        Group samples into one gauge family per metric name.

        Families and their samples are sorted so repeated scrapes of an
        unchanged store render identically.
        """
        grouped: dict[str, list[MetricSample]] = {}
        for sample in samples:
            grouped.setdefault(sample.name, []).append(sample)

        result = []
        for name in sorted(grouped):
            group = sorted(grouped[name], key=lambda s: s.label_values)
            family = Metric(name, group[0].documentation, "gauge")
            for sample in group:
                family.add_sample(name, sample.label_dict(), sample.value)
            result.append(family)
        return result
