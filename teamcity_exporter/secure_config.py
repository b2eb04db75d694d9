"""
Secure Configuration Management

Provides centralized, validated configuration for the exporter:
    - ExporterSettings: listener/logging settings from environment variables
    - load_instances(): TeamCity instances from the YAML configuration file

Usage:
    from teamcity_exporter.secure_config import get_config

    config = get_config()
    settings = config.get_exporter_settings()
    instances = config.load_instances(settings.config_path)

Security Features:
    - Strict validation of all configuration values
    - Fail-fast on missing/invalid configuration
    - Passwords read from environment variables (password_env) instead of the file
    - Placeholder detection (e.g., "your_password")
    - Passwords never appear in repr() or log output

Raises:
    ConfigurationError: If configuration is missing or invalid
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from teamcity_exporter.domain.constants import OVERLAP_POLICIES, scheduler_defaults
from teamcity_exporter.domain.instance import BuildFilter, BuildLocator, Instance

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_LISTEN_ADDRESS = "0.0.0.0:9107"
DEFAULT_METRICS_PATH = "/metrics"
DEFAULT_LOG_LEVEL = "INFO"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
PASSWORD_PLACEHOLDERS = ["your_password", "changeme", "change_me", "placeholder", "replace_me", "xxx"]
BUILD_STATUSES = ("SUCCESS", "FAILURE", "ERROR")


class ConfigurationError(Exception):
    """Raised when configuration is missing or invalid."""

    pass


def _parse_bool(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ExporterSettings:
    """
    Validated exporter process settings.
    """

    config_path: str = DEFAULT_CONFIG_PATH
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    metrics_path: str = DEFAULT_METRICS_PATH
    log_level: str = DEFAULT_LOG_LEVEL
    log_json: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.log_level = self.log_level.upper()
        self._validate()

    def _validate(self):
        """
        Validate exporter settings.

        Raises:
            ConfigurationError: If a setting is invalid
        """
        if not self.config_path:
            raise ConfigurationError("TEAMCITY_EXPORTER_CONFIG is required")

        if not self.metrics_path.startswith("/"):
            raise ConfigurationError(f"Metrics path must start with '/': {self.metrics_path}")

        if self.metrics_path in ("/", "/health"):
            raise ConfigurationError(f"Metrics path collides with a built-in route: {self.metrics_path}")

        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Log level must be one of {', '.join(LOG_LEVELS)}: {self.log_level}")

        # Validates the listen address format
        self.host_and_port()

    def host_and_port(self) -> tuple[str, int]:
        """
        Split the listen address into host and port.

        Example:
            >>> ExporterSettings(listen_address=":9107").host_and_port()
            ('0.0.0.0', 9107)
        """
        host, sep, port = self.listen_address.rpartition(":")
        if not sep or not port.isdigit():
            raise ConfigurationError(f"Listen address must be host:port: {self.listen_address}")

        port_number = int(port)
        if not 0 < port_number < 65536:
            raise ConfigurationError(f"Listen port out of range: {port_number}")

        return host.strip("[]") or "0.0.0.0", port_number


class SecureConfig:
    """
    Centralized secure configuration manager.

    Loads exporter settings from environment variables and TeamCity
    instances from the YAML file. Provides fail-fast behavior to catch
    configuration issues before any scheduler starts.
    """

    def __init__(self):
        """Initialize configuration (loads .env file)."""
        load_dotenv()

    def get_exporter_settings(self, **overrides: Any) -> ExporterSettings:
        """
        Get validated exporter settings.

        Args:
            **overrides: Values that take precedence over the environment
                (CLI flags); None values are ignored

        Returns:
            ExporterSettings: Validated settings

        Raises:
            ConfigurationError: If a setting is invalid
        """
        values: dict[str, Any] = {
            "config_path": os.getenv("TEAMCITY_EXPORTER_CONFIG", DEFAULT_CONFIG_PATH),
            "listen_address": os.getenv("TEAMCITY_EXPORTER_LISTEN_ADDRESS", DEFAULT_LISTEN_ADDRESS),
            "metrics_path": os.getenv("TEAMCITY_EXPORTER_METRICS_PATH", DEFAULT_METRICS_PATH),
            "log_level": os.getenv("TEAMCITY_EXPORTER_LOG_LEVEL", DEFAULT_LOG_LEVEL),
            "log_json": _parse_bool(os.getenv("TEAMCITY_EXPORTER_LOG_JSON")),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})

        return ExporterSettings(**values)

    def load_instances(self, path: str | Path) -> list[Instance]:
        """
        Load and validate TeamCity instances from a YAML file.

        Args:
            path: Path to the configuration file

        Returns:
            list[Instance]: Validated instances in file order

        Raises:
            ConfigurationError: If the file is missing, malformed or invalid
        """
        config_file = Path(path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_file}")

        try:
            with open(config_file, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Configuration file is not valid YAML: {config_file}: {e}") from e

        return self.parse_instances(data)

    def parse_instances(self, data: Any) -> list[Instance]:
        """
        Validate an already parsed configuration document.

        Raises:
            ConfigurationError: If the document is invalid
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a mapping with an 'instances' list")

        raw_instances = data.get("instances")
        if not raw_instances or not isinstance(raw_instances, list):
            raise ConfigurationError("At least one instance must be configured under 'instances'")

        instances = []
        seen_names: set[str] = set()
        for index, raw in enumerate(raw_instances):
            instance = self._parse_instance(raw, index)
            if instance.name in seen_names:
                raise ConfigurationError(f"Duplicate instance name: {instance.name}")
            seen_names.add(instance.name)
            instances.append(instance)

        return instances

    def _parse_instance(self, raw: Any, index: int) -> Instance:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Instance #{index} must be a mapping")

        name = str(raw.get("name") or "").strip()
        if not name:
            raise ConfigurationError(f"Instance #{index}: name is required")

        url = str(raw.get("url") or "").strip()
        if not re.match(r"^https?://[^\s/]+", url):
            raise ConfigurationError(f"Instance {name}: url must be an http(s) URL: {url!r}")

        username = str(raw.get("username") or "")
        password = self._resolve_password(name, raw)
        if password and not username:
            raise ConfigurationError(f"Instance {name}: password is set but username is missing")

        overlap_policy = str(raw.get("overlap_policy", scheduler_defaults.OVERLAP_POLICY)).lower()
        if overlap_policy not in OVERLAP_POLICIES:
            raise ConfigurationError(
                f"Instance {name}: overlap_policy must be one of {', '.join(OVERLAP_POLICIES)}: {overlap_policy}"
            )

        scrape_interval = self._positive_number(
            name, raw, "scrape_interval", scheduler_defaults.SCRAPE_INTERVAL_SECONDS
        )
        concurrency_limit = self._positive_number(
            name, raw, "concurrency_limit", scheduler_defaults.CONCURRENCY_LIMIT
        )
        if concurrency_limit != int(concurrency_limit):
            raise ConfigurationError(f"Instance {name}: concurrency_limit must be an integer")
        request_timeout = self._positive_number(
            name, raw, "request_timeout", scheduler_defaults.REQUEST_TIMEOUT_SECONDS
        )

        try:
            return Instance(
                name=name,
                url=url.rstrip("/"),
                username=username,
                password=password,
                scrape_interval=scrape_interval,
                concurrency_limit=int(concurrency_limit),
                request_timeout=request_timeout,
                overlap_policy=overlap_policy,
                build_filters=tuple(self._parse_filters(name, raw.get("builds_filters") or [])),
            )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    def _resolve_password(self, instance_name: str, raw: dict[str, Any]) -> str:
        """
        Read the password from `password_env` (preferred) or `password`.

        Raises:
            ConfigurationError: If the variable is unset or the value is a placeholder
        """
        password_env = raw.get("password_env")
        if password_env:
            password = os.getenv(str(password_env))
            if password is None:
                raise ConfigurationError(
                    f"Instance {instance_name}: environment variable {password_env} is not set"
                )
        else:
            password = str(raw.get("password") or "")

        if password and any(placeholder in password.lower() for placeholder in PASSWORD_PLACEHOLDERS):
            raise ConfigurationError(
                f"Instance {instance_name}: password contains a placeholder value - please set a real password"
            )

        return password

    @staticmethod
    def _positive_number(instance_name: str, raw: dict[str, Any], key: str, default: float) -> float:
        value = raw.get(key, default)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"Instance {instance_name}: {key} must be a number: {value!r}")
        if value <= 0:
            raise ConfigurationError(f"Instance {instance_name}: {key} must be positive: {value}")
        return value

    def _parse_filters(self, instance_name: str, raw_filters: Any) -> list[BuildFilter]:
        if not isinstance(raw_filters, list):
            raise ConfigurationError(f"Instance {instance_name}: builds_filters must be a list")

        filters = []
        seen_names: set[str] = set()
        for index, raw in enumerate(raw_filters):
            if not isinstance(raw, dict):
                raise ConfigurationError(f"Instance {instance_name}: filter #{index} must be a mapping")

            name = str(raw.get("name") or "").strip()
            if not name:
                raise ConfigurationError(f"Instance {instance_name}: filter #{index} name is required")
            if name in seen_names:
                raise ConfigurationError(f"Instance {instance_name}: duplicate filter name: {name}")
            seen_names.add(name)

            locator_data = raw.get("filter") or {}
            if not isinstance(locator_data, dict):
                raise ConfigurationError(f"Instance {instance_name}: filter {name}: 'filter' must be a mapping")

            status = locator_data.get("status")
            if status and str(status).upper() not in BUILD_STATUSES:
                raise ConfigurationError(
                    f"Instance {instance_name}: filter {name}: status must be one of {', '.join(BUILD_STATUSES)}"
                )

            try:
                locator = BuildLocator.from_dict(locator_data)
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Instance {instance_name}: filter {name}: {e}") from e

            filters.append(BuildFilter(name=name, locator=locator))

        return filters


# Convenience function for getting configuration
_config_instance = None


def get_config() -> SecureConfig:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        SecureConfig: The configuration manager
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = SecureConfig()
    return _config_instance
