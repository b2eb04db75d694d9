"""
Build domain models

Values flowing between pipeline stages. Each value is owned by the task that
produced it and never mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import Any

from .instance import BuildLocator


@dataclass(frozen=True)
class ResolvedLocator:
    """
    Concrete (build configuration, branch) query derived from a BuildFilter.

    Carries the originating filter and instance by name only.

    Attributes:
        instance_name: Instance the locator belongs to
        filter_name: Filter the locator was expanded from
        locator: Locator pinned to one build configuration (and usually one branch)
    """

    instance_name: str
    filter_name: str
    locator: BuildLocator

    @property
    def build_type(self) -> str | None:
        return self.locator.build_type

    @property
    def branch(self) -> str | None:
        return self.locator.branch

    def log_fields(self) -> dict[str, Any]:
        return {"instance": self.instance_name, "filter": self.filter_name, **self.locator.log_fields()}


@dataclass(frozen=True)
class Build:
    """
    A build returned by the TeamCity build search.

    Attributes:
        id: TeamCity build ID
        build_type_id: Build configuration ID
        branch_name: Branch the build ran on ("" when the server reports none)
        web_url: Link to the build in the TeamCity UI
        number: Build number as displayed by TeamCity
        status: SUCCESS, FAILURE, ERROR or UNKNOWN
        source: Locator that selected this build
    """

    id: int
    build_type_id: str
    branch_name: str
    web_url: str
    source: ResolvedLocator
    number: str = ""
    status: str = ""

    @classmethod
    def from_api(cls, payload: dict[str, Any], source: ResolvedLocator) -> "Build":
        """
        Build from a `build` element of the REST response.

        Branch falls back to the locator's branch when the server omits
        `branchName` (builds of configurations without VCS branches).
        """
        return cls(
            id=int(payload["id"]),
            build_type_id=payload.get("buildTypeId") or source.build_type or "",
            branch_name=payload.get("branchName") or source.branch or "",
            web_url=payload.get("webUrl", ""),
            number=str(payload.get("number", "")),
            status=payload.get("status", ""),
            source=source,
        )

    def log_fields(self) -> dict[str, Any]:
        return {
            "instance": self.source.instance_name,
            "filter": self.source.filter_name,
            "build_id": self.id,
            "build_configuration": self.build_type_id,
            "branch": self.branch_name,
            "web_url": self.web_url,
        }


@dataclass(frozen=True)
class StatisticsProperty:
    """
    One entry of a build's statistics.

    Attributes:
        name: Statistic name, optionally `metricName:subLabelValue`
        value: Raw string value as returned by TeamCity
    """

    name: str
    value: str


@dataclass
class BuildStatistics:
    """Statistics properties fetched for one build, in server order"""

    build: Build
    properties: list[StatisticsProperty] = field(default_factory=list)
