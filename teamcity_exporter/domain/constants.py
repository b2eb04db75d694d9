#!/usr/bin/env python3
"""
Application Constants

Centralized constants for metric naming, label names and defaults used by the
scrape pipeline and the exposition layer.
"""

from dataclasses import dataclass

NAMESPACE = "teamcity"
"""Prefix for every metric produced from TeamCity statistics"""


@dataclass(frozen=True)
class LabelNames:
    """
    Label names attached to build statistics samples.

    Attributes:
        INSTANCE: Exporter-side instance name (not Prometheus' own `instance` label)
        FILTER: Name of the build filter that selected the build
        BUILD_CONFIGURATION: TeamCity build configuration ID
        BRANCH: Branch name of the build
        OTHER: Sub-label embedded in the statistic name (`name:other`)

    Example:
        >>> labels.INSTANCE
        'exporter_instance'
    """

    INSTANCE: str = "exporter_instance"
    FILTER: str = "exporter_filter"
    BUILD_CONFIGURATION: str = "build_configuration"
    BRANCH: str = "branch"
    OTHER: str = "other"


@dataclass(frozen=True)
class SchedulerDefaults:
    """
    Defaults applied when an instance omits optional settings.

    Attributes:
        SCRAPE_INTERVAL_SECONDS: Seconds between two cycle starts
        CONCURRENCY_LIMIT: Max simultaneous requests against one instance
        REQUEST_TIMEOUT_SECONDS: Timeout for a single TeamCity request
        OVERLAP_POLICY: What to do when a tick fires while a cycle is still running
        BUILD_COUNT: Builds returned per locator (most recent only)
        DEFAULT_FILTER_NAME: Name of the filter synthesized for instances without filters
    """

    SCRAPE_INTERVAL_SECONDS: int = 60
    CONCURRENCY_LIMIT: int = 10
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    OVERLAP_POLICY: str = "allow"
    BUILD_COUNT: int = 1
    DEFAULT_FILTER_NAME: str = "default"


OVERLAP_POLICIES = ("allow", "skip")

labels = LabelNames()
scheduler_defaults = SchedulerDefaults()
