"""
Metric domain models

    - Label: Name/value pair attached to a sample
    - MetricSample: Named, labeled gauge value destined for exposition
    - compute_fingerprint(): Store key derived from name and label values
"""

import hashlib
from dataclasses import dataclass, field


def compute_fingerprint(name: str, *label_values: str) -> str:
    """
    Deterministic SHA-256 fingerprint over a metric name and its label values.

    Every part is length-prefixed before hashing, so ("ab", "c") and
    ("a", "bc") never collide. The sample value is not part of the key:
    recomputing a sample overwrites its store entry.

    Example:
        >>> compute_fingerprint("teamcity_build_duration", "main", "nightly") == \\
        ...     compute_fingerprint("teamcity_build_duration", "main", "nightly")
        True
    """
    digest = hashlib.sha256()
    for part in (name, *label_values):
        encoded = part.encode("utf-8")
        digest.update(f"{len(encoded)}:".encode())
        digest.update(encoded)
    return digest.hexdigest()


@dataclass(frozen=True)
class Label:
    name: str
    value: str


@dataclass(frozen=True)
class MetricSample:
    """
    Latest value of one time series.

    Attributes:
        name: Full metric name (namespaced, snake case)
        labels: Ordered label set
        value: Gauge value
        documentation: HELP text for the exposition format

    Example:
        >>> sample = MetricSample(
        ...     name="teamcity_build_duration",
        ...     labels=(Label("exporter_instance", "main"),),
        ...     value=12.5,
        ... )
        >>> sample.label_dict()
        {'exporter_instance': 'main'}
    """

    name: str
    labels: tuple[Label, ...] = ()
    value: float = 0.0
    documentation: str = ""
    fingerprint: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", tuple(self.labels))
        object.__setattr__(self, "fingerprint", compute_fingerprint(self.name, *self.label_values))

    @property
    def label_names(self) -> tuple[str, ...]:
        return tuple(label.name for label in self.labels)

    @property
    def label_values(self) -> tuple[str, ...]:
        return tuple(label.value for label in self.labels)

    def label_dict(self) -> dict[str, str]:
        return {label.name: label.value for label in self.labels}
