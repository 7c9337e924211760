# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from enum import Enum
from typing import NamedTuple


class Tenant(NamedTuple):
    tenant_id: str
    default_domain: str


class Subscription(NamedTuple):
    subscription_id: str
    name: str
    tenant_id: str
    tenant_domain: str


class SubscriptionContext(NamedTuple):
    """The subscription every per-subscription client call is executed against"""

    subscription_id: str
    tenant_id: str


class TelemetryResource(NamedTuple):
    name: str
    resource_group: str
    sampling_percentage: int

    @property
    def qualified_name(self) -> str:
        return f"{self.resource_group}/{self.name}"


class ActionStatus(Enum):
    UPDATED = "updated"
    FAILED = "failed"
    WOULD_UPDATE = "would_update"


class ResourceAction(NamedTuple):
    resource: TelemetryResource
    target_percentage: int
    status: ActionStatus
    error: str | None = None


class SubscriptionStatus(Enum):
    PROCESSED = "processed"
    NO_RESOURCES = "no_resources"
    SKIPPED = "skipped"


class SubscriptionResult(NamedTuple):
    subscription: Subscription
    status: SubscriptionStatus
    before: tuple[TelemetryResource, ...] = ()
    actions: tuple[ResourceAction, ...] = ()
    after: tuple[TelemetryResource, ...] | None = None
    """None when the resources could not be listed again after the updates"""
    error: str | None = None


def is_eligible(name: str | None, resource_group: str | None) -> bool:
    """Resources missing a name or resource group can neither be read reliably nor updated"""
    return bool(name and name.strip()) and bool(resource_group and resource_group.strip())
