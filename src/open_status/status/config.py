"""
Configuration for a monitoring session.

Config can be built directly or from a versioned dict (the shape a host
stores alongside its other settings). Dicts from older versions are
migrated before parsing.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict

from open_status.core.errors import InvalidArgument

CURRENT_CONFIG_VERSION = 2

DEFAULT_RECONCILE_INTERVAL = 300.0  # 5 minutes between background passes


def _positive(name: str, value: Any, allow_zero: bool = False) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        raise InvalidArgument(f"{name} must be a number, got {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise InvalidArgument(f"{name} must be {'>= 0' if allow_zero else '> 0'}, got {value}")
    return float(value)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff for store writes.

    Attributes:
        max_attempts: Total write attempts before an intent is dropped
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on any single delay, in seconds
        multiplier: Growth factor between consecutive delays
    """

    max_attempts: int = 5
    base_delay: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if isinstance(self.max_attempts, bool) or not isinstance(self.max_attempts, int):
            raise InvalidArgument(f"max_attempts must be an int, got {self.max_attempts!r}")
        if self.max_attempts < 1:
            raise InvalidArgument(f"max_attempts must be >= 1, got {self.max_attempts}")
        _positive("base_delay", self.base_delay, allow_zero=True)
        _positive("max_delay", self.max_delay, allow_zero=True)
        if _positive("multiplier", self.multiplier) < 1.0:
            raise InvalidArgument(f"multiplier must be >= 1, got {self.multiplier}")

    def delay_for(self, retry: int) -> float:
        """Delay before the given retry (0-based)."""
        return min(self.max_delay, self.base_delay * (self.multiplier**retry))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        defaults = cls()
        return cls(
            max_attempts=data.get("max_attempts", defaults.max_attempts),
            base_delay=data.get("base_delay", defaults.base_delay),
            max_delay=data.get("max_delay", defaults.max_delay),
            multiplier=data.get("multiplier", defaults.multiplier),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "multiplier": self.multiplier,
        }


@dataclass(frozen=True)
class MonitoringConfig:
    """
    Tunables for a MonitoringSession.

    Attributes:
        max_accuracy_meters: Samples reporting a coarser accuracy are ignored.
            Deployment-specific; there is deliberately no default.
        reconcile_interval: Seconds between timer-driven reconciliation passes
        hysteresis_meters: Extra distance beyond the radius an open site must
            reach before it closes (0 = plain inclusive radius check)
        error_history_size: How many surfaced errors the session keeps
        retry: Backoff policy for store writes
    """

    max_accuracy_meters: float
    reconcile_interval: float = DEFAULT_RECONCILE_INTERVAL
    hysteresis_meters: float = 0.0
    error_history_size: int = 50
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        _positive("max_accuracy_meters", self.max_accuracy_meters, allow_zero=True)
        _positive("reconcile_interval", self.reconcile_interval)
        _positive("hysteresis_meters", self.hysteresis_meters, allow_zero=True)
        if not isinstance(self.error_history_size, int) or self.error_history_size < 1:
            raise InvalidArgument(
                f"error_history_size must be a positive int, got {self.error_history_size!r}"
            )
        if not isinstance(self.retry, RetryPolicy):
            raise InvalidArgument(f"retry must be a RetryPolicy, got {self.retry!r}")

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "MonitoringConfig":
        """
        Build a config from a (possibly older) versioned dict.

        Raises:
            InvalidArgument: If max_accuracy_meters is missing or any value is invalid
        """
        config = migrate_config(dict(config))
        if "max_accuracy_meters" not in config:
            raise InvalidArgument("max_accuracy_meters is required")

        return cls(
            max_accuracy_meters=config["max_accuracy_meters"],
            reconcile_interval=config.get("reconcile_interval", DEFAULT_RECONCILE_INTERVAL),
            hysteresis_meters=config.get("hysteresis_meters", 0.0),
            error_history_size=config.get("error_history_size", 50),
            retry=RetryPolicy.from_dict(config.get("retry", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CURRENT_CONFIG_VERSION,
            "max_accuracy_meters": self.max_accuracy_meters,
            "reconcile_interval": self.reconcile_interval,
            "hysteresis_meters": self.hysteresis_meters,
            "error_history_size": self.error_history_size,
            "retry": self.retry.to_dict(),
        }


def default_config() -> Dict[str, Any]:
    """
    Get the default configuration dict.

    max_accuracy_meters is absent: hosts must supply it.
    """
    defaults = RetryPolicy()
    return {
        "version": CURRENT_CONFIG_VERSION,
        "reconcile_interval": DEFAULT_RECONCILE_INTERVAL,
        "hysteresis_meters": 0.0,
        "error_history_size": 50,
        "retry": defaults.to_dict(),
    }


def config_schema() -> Dict[str, Any]:
    """
    Get JSON-schema-like definition for UI configuration.

    Returns:
        Schema dict that UIs can use to render configuration forms
    """
    return {
        "type": "object",
        "required": ["max_accuracy_meters"],
        "properties": {
            "version": {"type": "integer", "default": CURRENT_CONFIG_VERSION},
            "max_accuracy_meters": {
                "type": "number",
                "minimum": 0,
                "description": "Ignore location fixes less accurate than this (meters)",
            },
            "reconcile_interval": {
                "type": "number",
                "exclusiveMinimum": 0,
                "default": DEFAULT_RECONCILE_INTERVAL,
                "description": "Seconds between background reconciliation passes",
            },
            "hysteresis_meters": {"type": "number", "minimum": 0, "default": 0.0},
            "error_history_size": {"type": "integer", "minimum": 1, "default": 50},
            "retry": {
                "type": "object",
                "properties": {
                    "max_attempts": {"type": "integer", "minimum": 1, "default": 5},
                    "base_delay": {"type": "number", "minimum": 0, "default": 0.5},
                    "max_delay": {"type": "number", "minimum": 0, "default": 30.0},
                    "multiplier": {"type": "number", "minimum": 1, "default": 2.0},
                },
            },
        },
    }


def migrate_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Migrate configuration to the current version.

    v1 stored the background interval in minutes as
    "location_check_interval_minutes" and retries as flat
    "max_retries"/"retry_base_delay" keys.
    """
    version = config.get("version", 1)
    if version == CURRENT_CONFIG_VERSION:
        return config
    if version > CURRENT_CONFIG_VERSION:
        raise InvalidArgument(f"Config version {version} is newer than {CURRENT_CONFIG_VERSION}")

    if version == 1:
        if "location_check_interval_minutes" in config:
            minutes = config.pop("location_check_interval_minutes")
            config.setdefault("reconcile_interval", _positive("interval", minutes) * 60.0)
        retry = dict(config.get("retry", {}))
        if "max_retries" in config:
            retry.setdefault("max_attempts", config.pop("max_retries"))
        if "retry_base_delay" in config:
            retry.setdefault("base_delay", config.pop("retry_base_delay"))
        if retry:
            config["retry"] = retry

    config["version"] = CURRENT_CONFIG_VERSION
    return config
