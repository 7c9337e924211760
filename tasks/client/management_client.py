# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/  Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import AsyncIterable
from contextlib import AbstractAsyncContextManager
from logging import Logger
from types import TracebackType
from typing import Any, Self, TypeVar, cast

# 3p
from azure.core.credentials import AccessToken
from azure.core.credentials_async import AsyncTokenCredential
from azure.core.exceptions import AzureError
from azure.mgmt.applicationinsights.aio import ApplicationInsightsManagementClient
from azure.mgmt.core.tools import parse_resource_id
from azure.mgmt.resource.subscriptions.v2021_01_01.aio import SubscriptionClient

# project
from tasks.errors import ContextSwitchFailure
from tasks.models import Subscription, SubscriptionContext, Tenant, TelemetryResource, is_eligible

T = TypeVar("T")

UNSAMPLED_PERCENTAGE = 100


async def collect(it: AsyncIterable[T]) -> list[T]:
    """Helper for collecting an async iterable, useful for simplifying error handling"""
    return [item async for item in it]


class TenantScopedCredential(AsyncTokenCredential):
    """Requests every token for a fixed tenant, the wrapped credential must allow that tenant"""

    def __init__(self, credential: AsyncTokenCredential, tenant_id: str) -> None:
        self.credential = credential
        self.tenant_id = tenant_id

    async def get_token(self, *scopes: str, **kwargs: Any) -> AccessToken:
        kwargs["tenant_id"] = self.tenant_id
        return await self.credential.get_token(*scopes, **kwargs)

    async def close(self) -> None:
        # the wrapped credential is owned by the task
        pass

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None = None,
        exc_value: BaseException | None = None,
        traceback: TracebackType | None = None,
    ) -> None:
        pass


def to_sampling_percentage(value: float | None) -> int:
    """Components without a sampling percentage ingest everything"""
    if value is None:
        return UNSAMPLED_PERCENTAGE
    return round(value)


def to_telemetry_resource(component: Any) -> TelemetryResource | None:
    """Converts an Application Insights component, returning None for components missing a name or resource group"""
    name = component.name
    resource_group = None
    if component.id:
        resource_group = parse_resource_id(component.id).get("resource_group")
    if not is_eligible(name, resource_group):
        return None
    return TelemetryResource(
        name=cast(str, name).strip(),
        resource_group=cast(str, resource_group).strip(),
        sampling_percentage=to_sampling_percentage(component.sampling_percentage),
    )


class CloudManagementClient(AbstractAsyncContextManager["CloudManagementClient"]):
    """Every platform call the sampling run makes. Per-subscription calls take the context explicitly"""

    def __init__(self, log: Logger, credential: AsyncTokenCredential) -> None:
        super().__init__()
        self.log = log
        self.credential = credential
        self.subscription_client = SubscriptionClient(credential)
        self._insights_clients: dict[SubscriptionContext, ApplicationInsightsManagementClient] = {}

    async def __aenter__(self) -> Self:
        await self.subscription_client.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        for client in self._insights_clients.values():
            await client.__aexit__(exc_type, exc_val, exc_tb)
        self._insights_clients.clear()
        await self.subscription_client.__aexit__(exc_type, exc_val, exc_tb)

    def credential_for(self, tenant_id: str) -> AsyncTokenCredential:
        return TenantScopedCredential(self.credential, tenant_id)

    async def list_tenants(self) -> list[Tenant]:
        tenants = await collect(self.subscription_client.tenants.list())
        return [
            Tenant(
                tenant_id=cast(str, t.tenant_id),
                default_domain=t.default_domain or t.display_name or cast(str, t.tenant_id),
            )
            for t in tenants
            if t.tenant_id
        ]

    async def list_subscriptions(self, tenant: Tenant) -> list[Subscription]:
        async with SubscriptionClient(self.credential_for(tenant.tenant_id)) as client:
            subscriptions = await collect(client.subscriptions.list())
        self.log.debug("Tenant %s returned %s subscriptions", tenant.default_domain, len(subscriptions))
        return [
            Subscription(
                subscription_id=sub.subscription_id,
                name=sub.display_name or sub.subscription_id,
                tenant_id=tenant.tenant_id,
                tenant_domain=tenant.default_domain,
            )
            for sub in subscriptions
            # delegated subscriptions are homed elsewhere but take their tokens from the listing tenant
            if sub.subscription_id
        ]

    async def set_context(self, subscription: Subscription) -> SubscriptionContext:
        """Confirms the subscription is usable and returns the context to run its calls against"""
        try:
            async with SubscriptionClient(self.credential_for(subscription.tenant_id)) as client:
                await client.subscriptions.get(subscription.subscription_id)
        except AzureError as e:
            raise ContextSwitchFailure(subscription.subscription_id, str(e)) from e
        return SubscriptionContext(subscription.subscription_id, subscription.tenant_id)

    def insights_client(self, context: SubscriptionContext) -> ApplicationInsightsManagementClient:
        if context not in self._insights_clients:
            self._insights_clients[context] = ApplicationInsightsManagementClient(
                self.credential_for(context.tenant_id), context.subscription_id
            )
        return self._insights_clients[context]

    async def list_telemetry_resources(self, context: SubscriptionContext) -> list[TelemetryResource]:
        components = await collect(self.insights_client(context).components.list())
        resources = [r for c in components if (r := to_telemetry_resource(c)) is not None]
        if len(resources) != len(components):
            self.log.debug(
                "Ignored %s components without a name or resource group in subscription %s",
                len(components) - len(resources),
                context.subscription_id,
            )
        return sorted(resources, key=lambda r: (r.resource_group.lower(), r.name.lower()))

    async def update_sampling_percentage(
        self, context: SubscriptionContext, resource: TelemetryResource, percentage: int
    ) -> TelemetryResource:
        client = self.insights_client(context)
        component = await client.components.get(resource.resource_group, resource.name)
        component.sampling_percentage = percentage
        updated = await client.components.create_or_update(resource.resource_group, resource.name, component)
        return resource._replace(sampling_percentage=to_sampling_percentage(updated.sampling_percentage))
