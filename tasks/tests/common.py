# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import AsyncIterable
from contextlib import suppress
from typing import Any, TypeVar
from unittest import IsolatedAsyncioTestCase
from unittest.mock import AsyncMock, MagicMock, Mock, patch

# 3p
from azure.core.exceptions import HttpResponseError

# project
from tasks.errors import ContextSwitchFailure
from tasks.models import Subscription, SubscriptionContext, Tenant, TelemetryResource

T = TypeVar("T")


class AsyncTestCase(IsolatedAsyncioTestCase):
    def patch_path(self, path: str, **kwargs: Any) -> MagicMock | AsyncMock:
        p = patch(path, **kwargs)
        self.addCleanup(p.stop)
        return p.start()


class TaskTestCase(AsyncTestCase):
    TASK_NAME: str = NotImplemented

    def patch(self, obj: str, **kwargs: Any):
        return self.patch_path(f"tasks.{self.TASK_NAME}.{obj}", **kwargs)

    def setUp(self) -> None:
        cred_mock = self.patch_path("tasks.task.DefaultAzureCredential", return_value=AsyncMockClient())
        self.credential = cred_mock.return_value
        self.datadog_api_client = self.patch_path("tasks.task.AsyncApiClient", return_value=AsyncMockClient())
        self.datadog_logs_api = self.patch_path("tasks.task.LogsApi", return_value=AsyncMock())
        self.datadog_metrics_api = self.patch_path("tasks.task.MetricsApi", return_value=AsyncMock())
        self.env: dict[str, str] = {}
        task_env_mock = self.patch_path("tasks.task.environ", create=True)
        task_env_mock.get.side_effect = lambda k, default=None: self.env.get(k, default)
        env_env_mock = self.patch_path("config.env.environ", create=True)
        env_env_mock.get.side_effect = lambda k, default=None: self.env.get(k, default)


async def async_generator(*items: T) -> AsyncIterable[T]:
    for x in items:
        if isinstance(x, Exception):
            raise x
        yield x


def mock(**kwargs: Any) -> Mock:
    m = Mock()
    for k, v in kwargs.items():
        setattr(m, k, v)
    return m


def AsyncMockClient(**kwargs: Any) -> AsyncMock:
    """An AsyncMock with the context manager methods set up to use as a client"""
    m = AsyncMock(**kwargs)
    m.__aenter__.return_value = m
    m.__aexit__.return_value = None
    return m


class FakeHttpError(HttpResponseError):
    def __init__(self, status_code: int, message: str = "Something went wrong") -> None:
        super().__init__(message=message)
        self.status_code = status_code


def subscription(sub_id: str, name: str, tenant: Tenant) -> Subscription:
    return Subscription(sub_id, name, tenant.tenant_id, tenant.default_domain)


class FakeManagementClient:
    """In-memory stand-in for `CloudManagementClient` which applies updates to its own resource state"""

    def __init__(
        self,
        tenants: list[Tenant] | None = None,
        subscriptions: dict[str, list[Subscription]] | None = None,
        resources: dict[str, list[TelemetryResource]] | None = None,
    ) -> None:
        self.tenants = tenants or []
        self.subscriptions = subscriptions or {}
        """tenant id to subscriptions"""
        self.resources = resources or {}
        """subscription id to resources"""
        self.failing_tenants: set[str] = set()
        self.failing_contexts: set[str] = set()
        self.failing_updates: set[str] = set()
        """qualified names of resources whose updates fail"""
        self.update_calls: list[tuple[SubscriptionContext, TelemetryResource, int]] = []

    async def __aenter__(self) -> "FakeManagementClient":
        return self

    async def __aexit__(self, *_: Any) -> None:
        pass

    async def list_tenants(self) -> list[Tenant]:
        return list(self.tenants)

    async def list_subscriptions(self, tenant: Tenant) -> list[Subscription]:
        if tenant.tenant_id in self.failing_tenants:
            raise FakeHttpError(403, "AuthorizationFailed")
        return list(self.subscriptions.get(tenant.tenant_id, []))

    async def set_context(self, sub: Subscription) -> SubscriptionContext:
        if sub.subscription_id in self.failing_contexts:
            raise ContextSwitchFailure(sub.subscription_id, "SubscriptionNotFound")
        return SubscriptionContext(sub.subscription_id, sub.tenant_id)

    async def list_telemetry_resources(self, context: SubscriptionContext) -> list[TelemetryResource]:
        return list(self.resources.get(context.subscription_id, []))

    async def update_sampling_percentage(
        self, context: SubscriptionContext, resource: TelemetryResource, percentage: int
    ) -> TelemetryResource:
        self.update_calls.append((context, resource, percentage))
        if resource.qualified_name in self.failing_updates:
            raise FakeHttpError(409, f"Conflict updating {resource.name}")
        updated = resource._replace(sampling_percentage=percentage)
        resources = self.resources[context.subscription_id]
        with suppress(ValueError):
            resources[resources.index(resource)] = updated
        return updated
