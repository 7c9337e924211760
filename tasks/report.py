# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections import Counter
from collections.abc import Callable, Iterable
from typing import Final

# 3p
from tabulate import tabulate

# project
from tasks.common import dry_run_of
from tasks.models import ActionStatus, ResourceAction, SubscriptionResult, SubscriptionStatus, TelemetryResource

SEPARATOR: Final = "=============================="
TABLE_HEADERS: Final = ("Name", "ResourceGroup", "SamplingPercentage")
DONE_MARKER: Final = "Done."


def run_header(target_percentage: int, dry_run: bool) -> str:
    return f"Target sampling percentage: {target_percentage}% | Dry run: {'enabled' if dry_run else 'disabled'}"


def subscription_header(result: SubscriptionResult) -> str:
    sub = result.subscription
    return f"{SEPARATOR}\nSubscription: {sub.name} ({sub.subscription_id}) | Tenant: {sub.tenant_domain}"


def resource_table(title: str, resources: Iterable[TelemetryResource]) -> str:
    rows = [(r.name, r.resource_group, r.sampling_percentage) for r in resources]
    table = tabulate(rows, headers=TABLE_HEADERS, tablefmt="simple", numalign="left", stralign="left")
    return f"{title}:\n{table}"


def action_line(action: ResourceAction) -> str:
    resource = action.resource
    if action.status is ActionStatus.UPDATED:
        return f"Updated {resource.qualified_name} sampling percentage to {action.target_percentage}%"
    if action.status is ActionStatus.WOULD_UPDATE:
        return dry_run_of(f"Update {resource.qualified_name} sampling percentage to {action.target_percentage}%")
    return f"WARNING: Failed to update {resource.qualified_name}: {action.error}"


def subscription_section(result: SubscriptionResult) -> str:
    lines = [subscription_header(result)]
    if result.status is SubscriptionStatus.SKIPPED:
        lines.append(f"Skipped: {result.error}")
    elif result.status is SubscriptionStatus.NO_RESOURCES:
        lines.append("No resources found.")
    else:
        lines.append(resource_table("Before", result.before))
        lines.extend(map(action_line, result.actions))
        if result.after is None:
            lines.append("After: unavailable, resources could not be listed")
        else:
            lines.append(resource_table("After", result.after))
    return "\n".join(lines)


def run_summary(results: Iterable[SubscriptionResult]) -> str:
    results = list(results)
    subscription_counts = Counter(r.status for r in results)
    action_counts = Counter(a.status for r in results for a in r.actions)
    return (
        f"Processed {subscription_counts[SubscriptionStatus.PROCESSED]} subscriptions "
        f"({subscription_counts[SubscriptionStatus.NO_RESOURCES]} without resources, "
        f"{subscription_counts[SubscriptionStatus.SKIPPED]} skipped): "
        f"{action_counts[ActionStatus.UPDATED]} updated, "
        f"{action_counts[ActionStatus.WOULD_UPDATE]} would update, "
        f"{action_counts[ActionStatus.FAILED]} failed"
    )


class RunReport:
    """Writes the run header, one section per subscription as it completes, and the done marker"""

    def __init__(self, write: Callable[[str], object] = print) -> None:
        self.write = write
        self.results: list[SubscriptionResult] = []

    def start(self, target_percentage: int, dry_run: bool) -> None:
        self.write(run_header(target_percentage, dry_run))

    def add(self, result: SubscriptionResult) -> None:
        self.results.append(result)
        self.write(subscription_section(result))

    def finish(self) -> None:
        self.write(SEPARATOR)
        self.write(run_summary(self.results))
        self.write(DONE_MARKER)
