# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from json import JSONDecodeError, loads
from logging import getLogger
from os import environ
from typing import Any, Final, TypeVar

# 3p
from jsonschema import ValidationError, validate

T = TypeVar("T")

log = getLogger(__name__)


# Settings
SAMPLING_PERCENTAGE_SETTING = "SAMPLING_PERCENTAGE"
INCLUDE_SUBSCRIPTIONS_SETTING = "INCLUDE_SUBSCRIPTIONS"
EXCLUDE_SUBSCRIPTIONS_SETTING = "EXCLUDE_SUBSCRIPTIONS"
DRY_RUN_SETTING = "DRY_RUN"
SUPPRESS_WARNINGS_SETTING = "SUPPRESS_WARNINGS"
LOG_LEVEL_SETTING = "LOG_LEVEL"
MANAGED_IDENTITY_CLIENT_ID_SETTING = "MANAGED_IDENTITY_CLIENT_ID"
DD_API_KEY_SETTING = "DD_API_KEY"
DD_TELEMETRY_SETTING = "DD_TELEMETRY"

# Job starter settings
SUBSCRIPTION_ID_SETTING = "SUBSCRIPTION_ID"
RESOURCE_GROUP_SETTING = "RESOURCE_GROUP"
AUTOMATION_ACCOUNT_SETTING = "AUTOMATION_ACCOUNT"
RUNBOOK_NAME_SETTING = "RUNBOOK_NAME"

DEFAULT_SAMPLING_PERCENTAGE: Final = 1
MIN_SAMPLING_PERCENTAGE: Final = 0
MAX_SAMPLING_PERCENTAGE: Final = 100

SUBSCRIPTION_LIST_SCHEMA: dict[str, Any] = {
    "type": "array",
    "items": {"type": "string"},
}


class MissingConfigOptionError(Exception):
    def __init__(self, option: str) -> None:
        super().__init__(f"Missing required configuration option: {option}")


class InvalidPercentageError(ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(
            f"Sampling percentage must be an integer between {MIN_SAMPLING_PERCENTAGE} "
            f"and {MAX_SAMPLING_PERCENTAGE}, got {value!r}"
        )


def get_config_option(name: str) -> str:
    """Get a configuration option from the environment or raise a helpful error"""
    if option := environ.get(name):
        return option
    raise MissingConfigOptionError(name)


def parse_config_option(name: str, parse: Callable[[str], T | None], default: T) -> T:
    """Get a configuration option from the environment, parse it, or return a default"""
    try:
        value = environ.get(name)
        if value is None:
            return default
        result = parse(value)
        if result is None:
            log.error(f"Invalid value for configuration option {name}: {value}")
            return default
        return result
    except ValueError:
        log.error(f"Invalid value for configuration option {name}: {environ.get(name)}")
        return default


def is_truthy(setting_name: str) -> bool:
    return environ.get(setting_name, "").lower().strip() in {"t", "true", "1", "y", "yes"}


def parse_percentage(value: str | int) -> int:
    """Parse a sampling percentage, raising `InvalidPercentageError` if it is not an integer in [0, 100]"""
    try:
        percentage = int(str(value).strip().removesuffix("%"))
    except ValueError:
        raise InvalidPercentageError(value) from None
    if not MIN_SAMPLING_PERCENTAGE <= percentage <= MAX_SAMPLING_PERCENTAGE:
        raise InvalidPercentageError(value)
    return percentage


def split_entries(values: Iterable[str]) -> list[str]:
    """Flatten comma separated entries, dropping blanks"""
    return [entry.strip() for value in values for entry in value.split(",") if entry.strip()]


def parse_subscription_list(value: str) -> list[str] | None:
    """Parses a list of subscription ids or names, either a JSON array or a comma separated string.
    Returns None if a JSON value is given that is not an array of strings"""
    value = value.strip()
    if not value.startswith("["):
        return split_entries([value])
    try:
        entries = loads(value)
        validate(instance=entries, schema=SUBSCRIPTION_LIST_SCHEMA)
    except (JSONDecodeError, ValidationError):
        return None
    return split_entries(entries)


@dataclass(frozen=True)
class SamplingConfig:
    target_percentage: int = DEFAULT_SAMPLING_PERCENTAGE
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    dry_run: bool = False
    suppress_warnings: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_percentage", parse_percentage(self.target_percentage))


def load_config_from_env() -> SamplingConfig:
    """Builds the run configuration from the environment, falling back to defaults for missing or invalid values"""
    return SamplingConfig(
        target_percentage=parse_config_option(
            SAMPLING_PERCENTAGE_SETTING, parse_percentage, DEFAULT_SAMPLING_PERCENTAGE
        ),
        include=parse_config_option(INCLUDE_SUBSCRIPTIONS_SETTING, parse_subscription_list, []),
        exclude=parse_config_option(EXCLUDE_SUBSCRIPTIONS_SETTING, parse_subscription_list, []),
        dry_run=is_truthy(DRY_RUN_SETTING),
        suppress_warnings=is_truthy(SUPPRESS_WARNINGS_SETTING),
    )
