"""
Domain Models - Type-safe data structures for the scrape pipeline

This package contains dataclasses representing the exporter's domain:
    - instance: Instance, BuildFilter, BuildLocator
    - builds: ResolvedLocator, Build, StatisticsProperty, BuildStatistics
    - metrics: Label, MetricSample, compute_fingerprint

Usage:
    from teamcity_exporter.domain import BuildFilter, BuildLocator

    nightly = BuildFilter(name="nightly", locator=BuildLocator(build_type="Nightly"))
    if nightly.locator.is_wildcard:
        print("branches are enumerated at scrape time")
"""

from .builds import Build, BuildStatistics, ResolvedLocator, StatisticsProperty
from .instance import BuildFilter, BuildLocator, Instance
from .metrics import Label, MetricSample, compute_fingerprint

__all__ = [
    # Instance configuration
    "Instance",
    "BuildFilter",
    "BuildLocator",
    # Pipeline values
    "ResolvedLocator",
    "Build",
    "StatisticsProperty",
    "BuildStatistics",
    # Metrics
    "Label",
    "MetricSample",
    "compute_fingerprint",
]
