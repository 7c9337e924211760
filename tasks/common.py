# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/  Copyright 2025 Datadog, Inc.

# stdlib
from datetime import datetime
from enum import Enum
from typing import Final

# project
from tasks.models import Subscription, Tenant, TelemetryResource

SAMPLING_UPDATER_METRIC_PREFIX: Final = "azure.sampling_updater."

MANAGEMENT_SCOPE: Final = "https://management.azure.com/.default"

DRY_RUN_PREFIX: Final = "DRY RUN | "


class Phase(Enum):
    AUTHENTICATION = "authentication"
    DISCOVERY = "discovery"
    FILTERING = "filtering"
    CONTEXT_SWITCH = "context_switch"
    LIST_RESOURCES = "list_resources"
    UPDATE = "update"


def log_fields(
    phase: Phase,
    subscription: Subscription | None = None,
    tenant: Tenant | None = None,
    resource: TelemetryResource | None = None,
    error: BaseException | str | None = None,
) -> dict[str, str]:
    """Structured fields attached to a log record via `extra`, so warnings can be attributed without parsing messages"""
    fields = {"phase": phase.value}
    if subscription is not None:
        fields["subscription_id"] = subscription.subscription_id
        fields["subscription_name"] = subscription.name
        fields["tenant_id"] = subscription.tenant_id
    if tenant is not None:
        fields["tenant_id"] = tenant.tenant_id
        fields["tenant_domain"] = tenant.default_domain
    if resource is not None:
        fields["resource"] = resource.qualified_name
    if error is not None:
        fields["error"] = error_message(error)
    return fields


def error_message(error: BaseException | str) -> str:
    """Returns the first line of an error's message, Azure errors tend to append verbose details"""
    if isinstance(error, str):
        return error
    lines = str(getattr(error, "message", None) or error).strip().splitlines()
    return lines[0] if lines else type(error).__name__


def dry_run_of(s: str) -> str:
    msg = s[0].lower() + s[1:]
    return f"{DRY_RUN_PREFIX}Would {msg}"


def now() -> str:
    """Return the current time in ISO format"""
    return datetime.now().isoformat()
