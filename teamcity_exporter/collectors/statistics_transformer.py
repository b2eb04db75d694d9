"""
Statistics Transformer

Converts TeamCity statistics properties into labeled Prometheus samples:

    "queuedTime:buildStep1" = "1200"
        -> teamcity_queued_time{exporter_instance, exporter_filter,
                                build_configuration, branch, other="buildStep1"} 1200.0

Usage:
    transformer = StatisticsTransformer()
    written = transformer.transform_all(statistics, store)
"""

import re

from teamcity_exporter.core.cycle_metrics import get_current_tracker
from teamcity_exporter.core.logging_config import get_logger, log_with_context
from teamcity_exporter.core.metrics_store import FingerprintStore
from teamcity_exporter.domain.builds import Build, BuildStatistics, StatisticsProperty
from teamcity_exporter.domain.constants import NAMESPACE, labels
from teamcity_exporter.domain.metrics import Label, MetricSample
from teamcity_exporter.utils.error_handling import log_and_continue

logger = get_logger(__name__)

# Group 1: lowercase prefix or an uppercase run; group 2: one capitalised word (or end)
_CAMEL_WORDS = re.compile(r"(^[^A-Z]*|[A-Z]*)([A-Z][^A-Z]+|$)")
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_:]")


def split_metric_title(title: str) -> tuple[str, str | None]:
    """
    Split a statistic name on its first colon.

    Example:
        >>> split_metric_title("Duration:seconds")
        ('Duration', 'seconds')
        >>> split_metric_title("BuildDuration")
        ('BuildDuration', None)
    """
    base, sep, other = title.partition(":")
    return base, (other if sep else None)


def to_snake_case(identifier: str) -> str:
    """
    Convert a camel/mixed case identifier to lower snake case.

    An uppercase run directly followed by a capitalised word stays one word
    (`ABTest` -> `ab_test`); a trailing uppercase run is one word.

    Example:
        >>> to_snake_case("QueuedTime")
        'queued_time'
        >>> to_snake_case("buildNumber")
        'build_number'
    """
    words: list[str] = []
    for match in _CAMEL_WORDS.finditer(identifier):
        run, word = match.groups()
        if run:
            words.append(run)
        if word:
            words.append(word)
    return "_".join(words).lower()


def sanitize_metric_name(name: str) -> str:
    """Replace characters Prometheus does not allow in metric names"""
    sanitized = _INVALID_NAME_CHARS.sub("_", name)
    if sanitized and sanitized[0].isdigit():
        sanitized = f"_{sanitized}"
    return sanitized


class StatisticsTransformer:
    """
    Builds MetricSamples from statistics properties.

    Attributes:
        namespace: Prefix joined to every metric name with "_"
    """

    def __init__(self, namespace: str = NAMESPACE):
        self.namespace = namespace

    def metric_name(self, base: str) -> str:
        return sanitize_metric_name(f"{self.namespace}_{to_snake_case(base)}")

    def transform(self, prop: StatisticsProperty, build: Build) -> MetricSample | None:
        """
        Convert one statistics property into a sample.

        Returns:
            The sample, or None if the value is not a number (logged as an error)
        """
        base, other = split_metric_title(prop.name)
        name = self.metric_name(base)

        try:
            value = float(prop.value)
        except ValueError as e:
            tracker = get_current_tracker()
            if tracker:
                tracker.record_error()
            log_and_continue(
                logger,
                e,
                {"property": prop.name, "value": prop.value, **build.log_fields()},
                "Statistic value parsing",
                level="error",
            )
            return None

        sample_labels = [
            Label(labels.INSTANCE, build.source.instance_name),
            Label(labels.FILTER, build.source.filter_name),
            Label(labels.BUILD_CONFIGURATION, build.build_type_id),
            Label(labels.BRANCH, build.branch_name),
        ]
        if other is not None:
            sample_labels.append(Label(labels.OTHER, other))

        return MetricSample(
            name=name,
            labels=tuple(sample_labels),
            value=value,
            documentation=f"TeamCity build statistic {base}",
        )

    def transform_all(self, statistics: BuildStatistics, store: FingerprintStore) -> int:
        """
        Transform every property of a build and write the samples to the store.

        Returns:
            Number of samples written
        """
        written = 0
        for prop in statistics.properties:
            sample = self.transform(prop, statistics.build)
            if sample is None:
                continue
            store.put(sample)
            written += 1
            log_with_context(
                logger,
                "debug",
                "Saving metric to store",
                name=sample.name,
                value=sample.value,
                labels=sample.label_dict(),
            )
        return written
