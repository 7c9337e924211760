# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from abc import ABC, abstractmethod
from logging import Logger

# 3p
from azure.core.exceptions import AzureError

# project
from tasks.client.management_client import CloudManagementClient
from tasks.common import Phase, dry_run_of, error_message, log_fields
from tasks.errors import ContextSwitchFailure
from tasks.models import (
    ActionStatus,
    ResourceAction,
    Subscription,
    SubscriptionContext,
    SubscriptionResult,
    SubscriptionStatus,
    TelemetryResource,
)


class ExecutionStrategy(ABC):
    """What happens to each eligible resource, chosen once per run"""

    DRY_RUN: bool

    def __init__(self, client: CloudManagementClient, log: Logger) -> None:
        self.client = client
        self.log = log

    @abstractmethod
    async def execute(
        self, subscription: Subscription, context: SubscriptionContext, resource: TelemetryResource, target: int
    ) -> ResourceAction: ...


class ApplyStrategy(ExecutionStrategy):
    DRY_RUN = False

    async def execute(
        self, subscription: Subscription, context: SubscriptionContext, resource: TelemetryResource, target: int
    ) -> ResourceAction:
        try:
            await self.client.update_sampling_percentage(context, resource, target)
        except AzureError as e:
            self.log.warning(
                "Failed to update %s in subscription %s: %s",
                resource.qualified_name,
                subscription.subscription_id,
                error_message(e),
                extra=log_fields(Phase.UPDATE, subscription=subscription, resource=resource, error=e),
            )
            return ResourceAction(resource, target, ActionStatus.FAILED, error_message(e))
        self.log.debug("Updated %s to %s%%", resource.qualified_name, target)
        return ResourceAction(resource, target, ActionStatus.UPDATED)


class SimulateStrategy(ExecutionStrategy):
    DRY_RUN = True

    async def execute(
        self, subscription: Subscription, context: SubscriptionContext, resource: TelemetryResource, target: int
    ) -> ResourceAction:
        self.log.debug(dry_run_of("Update %s to %s%%"), resource.qualified_name, target)
        return ResourceAction(resource, target, ActionStatus.WOULD_UPDATE)


def strategy_for(dry_run: bool, client: CloudManagementClient, log: Logger) -> ExecutionStrategy:
    return SimulateStrategy(client, log) if dry_run else ApplyStrategy(client, log)


class ResourceSamplingUpdater:
    def __init__(
        self, client: CloudManagementClient, strategy: ExecutionStrategy, target_percentage: int, log: Logger
    ) -> None:
        self.client = client
        self.strategy = strategy
        self.target_percentage = target_percentage
        self.log = log

    async def update_subscription(self, subscription: Subscription) -> SubscriptionResult:
        """Applies (or simulates) the target percentage on every eligible resource in the subscription.
        Failures are contained to the subscription or resource they happen in"""
        try:
            context = await self.client.set_context(subscription)
        except ContextSwitchFailure as e:
            self.log.warning(
                "Skipping subscription %s (%s): %s",
                subscription.name,
                subscription.subscription_id,
                e.reason,
                extra=log_fields(Phase.CONTEXT_SWITCH, subscription=subscription, error=e.reason),
            )
            return SubscriptionResult(subscription, SubscriptionStatus.SKIPPED, error=error_message(e.reason))

        try:
            before = tuple(await self.client.list_telemetry_resources(context))
        except AzureError as e:
            self.log.warning(
                "Skipping subscription %s (%s), failed to list resources: %s",
                subscription.name,
                subscription.subscription_id,
                error_message(e),
                extra=log_fields(Phase.LIST_RESOURCES, subscription=subscription, error=e),
            )
            return SubscriptionResult(subscription, SubscriptionStatus.SKIPPED, error=error_message(e))

        if not before:
            self.log.info("No resources found in subscription %s (%s)", subscription.name, subscription.subscription_id)
            return SubscriptionResult(subscription, SubscriptionStatus.NO_RESOURCES)

        actions: list[ResourceAction] = []
        for resource in before:
            actions.append(await self.strategy.execute(subscription, context, resource, self.target_percentage))

        after: tuple[TelemetryResource, ...] | None
        try:
            after = tuple(await self.client.list_telemetry_resources(context))
        except AzureError as e:
            self.log.warning(
                "Failed to list resources after update in subscription %s (%s): %s",
                subscription.name,
                subscription.subscription_id,
                error_message(e),
                extra=log_fields(Phase.LIST_RESOURCES, subscription=subscription, error=e),
            )
            after = None

        return SubscriptionResult(subscription, SubscriptionStatus.PROCESSED, before, tuple(actions), after)
