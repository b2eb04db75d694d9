"""
Instance domain models

Configured scrape targets and the build filters that select builds on them:
    - BuildLocator: Query constraints rendered to TeamCity locator syntax
    - BuildFilter: Named locator template
    - Instance: One TeamCity server with its scrape settings
"""

import base64
from dataclasses import dataclass, field, replace
from typing import Any

from .constants import OVERLAP_POLICIES, scheduler_defaults


LOCATOR_SPECIAL_CHARACTERS = frozenset(",():")


def _render_bool(value: bool) -> str:
    return "true" if value else "false"


def escape_locator_value(value: str) -> str:
    """
    Make a value safe to embed in a locator.

    Values containing locator punctuation (or starting with `$`) are sent in
    TeamCity's `$base64:` form; everything else is left readable.

    Example:
        >>> escape_locator_value("main")
        'main'
        >>> escape_locator_value("feature/a,b")
        '$base64:ZmVhdHVyZS9hLGI='
    """
    if value.startswith("$") or LOCATOR_SPECIAL_CHARACTERS.intersection(value):
        encoded = base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii")
        return f"$base64:{encoded}"
    return value


@dataclass(frozen=True)
class BuildLocator:
    """
    Constraints for a TeamCity build search.

    Unset build_type or branch make the locator a wildcard that the filter
    expander enumerates against the server at scrape time.

    Attributes:
        build_type: Build configuration ID (None = every configuration)
        branch: Branch name (None = every branch)
        status: Build status constraint (SUCCESS, FAILURE, ERROR)
        running: Only running (True) or only finished (False) builds
        canceled: Only canceled (True) or only non-canceled (False) builds
        count: Maximum builds returned per locator

    Example:
        >>> BuildLocator(build_type="Release", branch="main", status="SUCCESS").to_locator_string()
        'buildType:(id:Release),branch:(name:main),status:SUCCESS,count:1'
    """

    build_type: str | None = None
    branch: str | None = None
    status: str | None = None
    running: bool | None = None
    canceled: bool | None = None
    count: int = scheduler_defaults.BUILD_COUNT

    def __post_init__(self) -> None:
        if self.count < 1:
            raise ValueError(f"count must be >= 1, got {self.count}")
        if self.status is not None:
            object.__setattr__(self, "status", self.status.upper())

    @property
    def is_wildcard(self) -> bool:
        """True if build configuration or branch still has to be enumerated"""
        return not self.build_type or not self.branch

    def with_target(self, build_type: str, branch: str | None) -> "BuildLocator":
        """Copy of this locator pinned to a concrete configuration and branch"""
        return replace(self, build_type=build_type, branch=branch)

    def to_locator_string(self) -> str:
        """
        Render the locator in TeamCity's `dimension:value` syntax.

        A missing branch renders as `branch:(default:any)` so builds from every
        branch match instead of only the default branch.
        """
        parts = []
        if self.build_type:
            parts.append(f"buildType:(id:{escape_locator_value(self.build_type)})")
        if self.branch:
            parts.append(f"branch:(name:{escape_locator_value(self.branch)})")
        else:
            parts.append("branch:(default:any)")
        if self.status:
            parts.append(f"status:{self.status}")
        if self.running is not None:
            parts.append(f"running:{_render_bool(self.running)}")
        if self.canceled is not None:
            parts.append(f"canceled:{_render_bool(self.canceled)}")
        parts.append(f"count:{self.count}")
        return ",".join(parts)

    def log_fields(self) -> dict[str, Any]:
        """Non-empty locator fields for structured log context"""
        fields: dict[str, Any] = {
            "build_type": self.build_type,
            "branch": self.branch,
            "status": self.status,
            "running": self.running,
            "canceled": self.canceled,
            "count": self.count,
        }
        return {key: value for key, value in fields.items() if value is not None and value != ""}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildLocator":
        """
        Build a locator from a configuration mapping.

        Accepts both snake_case keys and TeamCity's camelCase `buildType`.
        """
        return cls(
            build_type=data.get("build_type") or data.get("buildType") or None,
            branch=data.get("branch") or None,
            status=data.get("status") or None,
            running=data.get("running"),
            canceled=data.get("canceled"),
            count=int(data.get("count", scheduler_defaults.BUILD_COUNT)),
        )


@dataclass(frozen=True)
class BuildFilter:
    """
    Named build query template.

    Attributes:
        name: Filter name, used as a metric label (unique within an instance)
        locator: Constraints, possibly a wildcard
    """

    name: str
    locator: BuildLocator = field(default_factory=BuildLocator)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("BuildFilter name is required")

    def log_fields(self) -> dict[str, Any]:
        return {"filter": self.name, **self.locator.log_fields()}


@dataclass(frozen=True)
class Instance:
    """
    One TeamCity server to scrape.

    Immutable for the lifetime of the process; one scheduler runs per instance.

    Attributes:
        name: Instance name, used as the exporter_instance label
        url: Server root URL (e.g., https://teamcity.example.com)
        username: HTTP Basic username (empty for guest access)
        password: HTTP Basic password
        scrape_interval: Seconds between cycle starts
        concurrency_limit: Max simultaneous requests against the server
        request_timeout: Timeout in seconds for each request
        overlap_policy: "allow" starts a cycle on every tick, "skip" skips ticks while one runs
        build_filters: Configured build filters (may be empty)
    """

    name: str
    url: str
    username: str = ""
    password: str = field(default="", repr=False)
    scrape_interval: float = scheduler_defaults.SCRAPE_INTERVAL_SECONDS
    concurrency_limit: int = scheduler_defaults.CONCURRENCY_LIMIT
    request_timeout: float = scheduler_defaults.REQUEST_TIMEOUT_SECONDS
    overlap_policy: str = scheduler_defaults.OVERLAP_POLICY
    build_filters: tuple[BuildFilter, ...] = ()

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Instance name is required")
        if not self.url:
            raise ValueError(f"Instance {self.name}: url is required")
        if self.scrape_interval <= 0:
            raise ValueError(f"Instance {self.name}: scrape_interval must be positive")
        if self.concurrency_limit < 1:
            raise ValueError(f"Instance {self.name}: concurrency_limit must be >= 1")
        if self.request_timeout <= 0:
            raise ValueError(f"Instance {self.name}: request_timeout must be positive")
        if self.overlap_policy not in OVERLAP_POLICIES:
            raise ValueError(f"Instance {self.name}: overlap_policy must be one of {OVERLAP_POLICIES}")
        object.__setattr__(self, "build_filters", tuple(self.build_filters))

    @property
    def has_credentials(self) -> bool:
        return bool(self.username)

    def log_fields(self) -> dict[str, Any]:
        """Loggable fields (credentials excluded)"""
        return {
            "instance": self.name,
            "url": self.url,
            "scrape_interval": self.scrape_interval,
            "concurrency_limit": self.concurrency_limit,
            "filters_number": len(self.build_filters),
        }
