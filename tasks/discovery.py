# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from logging import Logger

# 3p
from azure.core.exceptions import AzureError

# project
from tasks.client.management_client import CloudManagementClient
from tasks.common import Phase, error_message, log_fields
from tasks.errors import TotalDiscoveryFailure
from tasks.models import Subscription


async def discover_subscriptions(client: CloudManagementClient, log: Logger) -> list[Subscription]:
    """Lists every subscription in every tenant the identity can see.
    A tenant whose subscriptions cannot be listed is logged and skipped,
    finding no subscriptions at all raises `TotalDiscoveryFailure`"""
    try:
        tenants = await client.list_tenants()
    except AzureError as e:
        raise TotalDiscoveryFailure(f"Failed to list tenants: {error_message(e)}") from e

    log.info("Found %s tenants", len(tenants))

    subscriptions: dict[str, Subscription] = {}
    for tenant in tenants:
        try:
            tenant_subscriptions = await client.list_subscriptions(tenant)
        except AzureError as e:
            log.warning(
                "Failed to list subscriptions for tenant %s (%s): %s",
                tenant.default_domain,
                tenant.tenant_id,
                error_message(e),
                extra=log_fields(Phase.DISCOVERY, tenant=tenant, error=e),
            )
            continue
        for sub in tenant_subscriptions:
            subscriptions.setdefault(sub.subscription_id.lower(), sub)

    if not subscriptions:
        raise TotalDiscoveryFailure("No subscriptions found in any tenant accessible to the current identity")

    log.info("Found %s subscriptions across %s tenants", len(subscriptions), len(tenants))
    return list(subscriptions.values())
