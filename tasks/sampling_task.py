# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# usage: sampling_task.py [-h] [-p PERCENTAGE] [-i INCLUDE] [-e EXCLUDE] [-d] [-q]
#
# Set the ingestion sampling percentage of every Application Insights component
# in every subscription reachable by the current identity
#
# optional arguments:
#   -h, --help            show this help message and exit
#   -p PERCENTAGE, --percentage PERCENTAGE
#                         Target sampling percentage (0-100)
#   -i INCLUDE, --include INCLUDE
#                         Subscription id or name to target, repeatable or comma separated
#   -e EXCLUDE, --exclude EXCLUDE
#                         Subscription id or name to skip, repeatable or comma separated
#   -d, --dry-run         Report what would change without updating anything
#   -q, --suppress-warnings
#                         Silence Azure SDK and Python warnings

# stdlib
import argparse
from asyncio import run
from collections.abc import Callable, Sequence
from types import TracebackType
from typing import Self

# project
from config.env import SamplingConfig, load_config_from_env, parse_percentage, split_entries
from tasks.client.filtering import SubscriptionFilter
from tasks.client.management_client import CloudManagementClient
from tasks.common import Phase, log_fields, now
from tasks.discovery import discover_subscriptions
from tasks.errors import FilterExhaustionFailure, SamplingRunError
from tasks.models import ActionStatus, Subscription
from tasks.report import RunReport
from tasks.task import Task, configure_logging, configure_warnings, log
from tasks.updater import ResourceSamplingUpdater, strategy_for

SAMPLING_TASK_NAME = "sampling_task"


class SamplingTask(Task):
    NAME = SAMPLING_TASK_NAME

    def __init__(self, config: SamplingConfig, write: Callable[[str], object] = print) -> None:
        super().__init__()
        self.config = config
        self.tags.append(f"dry_run:{str(config.dry_run).lower()}")
        self.client = CloudManagementClient(self.log, self.credential)
        self.report = RunReport(write)
        self.updater = ResourceSamplingUpdater(
            self.client, strategy_for(config.dry_run, self.client, self.log), config.target_percentage, self.log
        )

    async def __aenter__(self) -> Self:
        await super().__aenter__()
        await self.client.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        await self.client.__aexit__(exc_type, exc_val, exc_tb)
        await super().__aexit__(exc_type, exc_val, exc_tb)

    async def run(self) -> None:
        subscriptions = await self.discover()
        targets = self.select_targets(subscriptions, SubscriptionFilter(self.config.include, self.config.exclude))
        await self.process_targets(targets)

    async def discover(self) -> list[Subscription]:
        return await discover_subscriptions(self.client, self.log)

    def select_targets(
        self, subscriptions: list[Subscription], subscription_filter: SubscriptionFilter
    ) -> list[Subscription]:
        try:
            targets = subscription_filter.apply(subscriptions)
        except FilterExhaustionFailure as e:
            self.log.warning("%s", e, extra=log_fields(Phase.FILTERING, error=e))
            raise
        self.log.info("Targeting %s of %s subscriptions", len(targets), len(subscriptions))
        return targets

    async def process_targets(self, targets: list[Subscription]) -> None:
        self.report.start(self.config.target_percentage, self.config.dry_run)
        for subscription in targets:
            self.log.info("Processing subscription %s (%s)", subscription.name, subscription.subscription_id)
            self.report.add(await self.updater.update_subscription(subscription))
        self.report.finish()

    def metrics(self) -> dict[str, float]:
        statuses = [a.status for r in self.report.results for a in r.actions]
        return {
            "subscriptions_processed": len(self.report.results),
            "resources_updated": statuses.count(ActionStatus.UPDATED),
            "resources_failed": statuses.count(ActionStatus.FAILED),
        }


def parse_args(argv: Sequence[str] | None = None) -> SamplingConfig:
    defaults = load_config_from_env()
    parser = argparse.ArgumentParser(
        description="Set the ingestion sampling percentage of every Application Insights component "
        "in every subscription reachable by the current identity"
    )
    parser.add_argument(
        "-p",
        "--percentage",
        type=parse_percentage,
        default=defaults.target_percentage,
        help=f"Target sampling percentage (0-100), defaults to {defaults.target_percentage}",
    )
    parser.add_argument(
        "-i",
        "--include",
        action="append",
        default=[],
        help="Subscription id or name to target, repeatable or comma separated. "
        "If not provided, all subscriptions are targeted",
    )
    parser.add_argument(
        "-e",
        "--exclude",
        action="append",
        default=[],
        help="Subscription id or name to skip, repeatable or comma separated",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        default=defaults.dry_run,
        help="Report what would change without updating anything",
    )
    parser.add_argument(
        "-q",
        "--suppress-warnings",
        action="store_true",
        default=defaults.suppress_warnings,
        help="Silence Azure SDK and Python warnings",
    )
    args = parser.parse_args(argv)
    return SamplingConfig(
        target_percentage=args.percentage,
        include=split_entries(args.include) or defaults.include,
        exclude=split_entries(args.exclude) or defaults.exclude,
        dry_run=args.dry_run,
        suppress_warnings=args.suppress_warnings,
    )


async def run_sampling_task(config: SamplingConfig) -> int:
    """Runs the task and returns the process exit code"""
    level = configure_logging()
    configure_warnings(config.suppress_warnings)
    log.info("Started %s at %s (log level %s)", SAMPLING_TASK_NAME, now(), level)
    if config.dry_run:
        log.info("Dry run enabled, no changes will be made")
    try:
        async with SamplingTask(config) as task:
            await task.run()
    except FilterExhaustionFailure as e:
        log.info("No subscriptions left to process, stopping: %s", e)
        return 0
    except SamplingRunError as e:
        log.error("Sampling run aborted: %s", e)
        return 1
    log.info("%s finished at %s", SAMPLING_TASK_NAME, now())
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    raise SystemExit(run(run_sampling_task(parse_args(argv))))


if __name__ == "__main__":  # pragma: no cover
    main()
