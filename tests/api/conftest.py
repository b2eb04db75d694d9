"""
API Test Configuration

Provides a populated fingerprint store, a registry with the store collector
and scheduler stand-ins for the health endpoint.
"""

from unittest.mock import Mock

import pytest
from prometheus_client import CollectorRegistry

from teamcity_exporter.api.exposition import StoreCollector
from teamcity_exporter.core.cycle_metrics import record_instance_status
from teamcity_exporter.domain.instance import Instance
from teamcity_exporter.domain.metrics import Label, MetricSample


def _build_labels(branch: str, other: str | None = None) -> tuple[Label, ...]:
    labels = (
        Label("exporter_instance", "main"),
        Label("exporter_filter", "nightly"),
        Label("build_configuration", "X"),
        Label("branch", branch),
    )
    if other is not None:
        labels += (Label("other", other),)
    return labels


@pytest.fixture
def populated_store(store):
    """Store holding two build duration series, one queued time and an instance status"""
    doc = "TeamCity build statistic BuildDuration"
    store.put(MetricSample("teamcity_build_duration", _build_labels("main"), 81234.0, doc))
    store.put(MetricSample("teamcity_build_duration", _build_labels("dev"), 60000.0, doc))
    store.put(
        MetricSample(
            "teamcity_queued_time", _build_labels("main", "buildStep1"), 1200.0, "TeamCity build statistic queuedTime"
        )
    )
    record_instance_status(store, "main", up=True)
    return store


@pytest.fixture
def collector(populated_store):
    return StoreCollector(populated_store, collector_id="0123abcd")


@pytest.fixture
def registry(collector):
    """Fresh registry (never the global REGISTRY) holding the store collector"""
    registry = CollectorRegistry()
    registry.register(collector)
    return registry


def make_scheduler(name: str, last_status: bool | None) -> Mock:
    scheduler = Mock()
    scheduler.instance = Instance(name=name, url=f"https://{name}.example.com")
    scheduler.last_status = last_status
    scheduler.tick_count = 3
    scheduler.skipped_ticks = 0
    scheduler.running_cycles = 0
    return scheduler


@pytest.fixture
def healthy_schedulers():
    return [make_scheduler("main", True), make_scheduler("backup", None)]


@pytest.fixture
def degraded_schedulers():
    return [make_scheduler("main", True), make_scheduler("backup", False)]
