#!/usr/bin/env python
# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# usage: interactive.py [-h] [-q]
#
# Choose subscriptions from a menu and set the sampling percentage of their Application Insights components
#
# optional arguments:
#   -h, --help            show this help message and exit
#   -q, --suppress-warnings
#                         Silence Azure SDK and Python warnings

# stdlib
import argparse
from asyncio import run
from collections.abc import Callable
from itertools import groupby
from logging import getLogger

# project
from config.env import DEFAULT_SAMPLING_PERCENTAGE, InvalidPercentageError, SamplingConfig, parse_percentage
from tasks.client.filtering import SubscriptionFilter, sort_targets
from tasks.errors import SamplingRunError
from tasks.models import Subscription
from tasks.sampling_task import SamplingTask
from tasks.task import configure_logging, configure_warnings

log = getLogger("interactive")

Prompt = Callable[[str], str]

SELECTION_PROMPT = """
    Enter the numbers of the subscriptions to update, separated by commas (ranges like 2-4 are allowed)
    - To select all of them, enter '*'
    - To exit without changes, enter '-'
    : """


class SelectionCancelled(Exception):
    pass


def subscription_menu(subscriptions: list[Subscription]) -> str:
    """Numbered listing grouped by tenant, numbers follow the order subscriptions are processed in"""
    lines = []
    number = 1
    for tenant_domain, tenant_subscriptions in groupby(subscriptions, key=lambda s: s.tenant_domain):
        lines.append(f"Tenant: {tenant_domain}")
        for sub in tenant_subscriptions:
            lines.append(f"\t{number:>3}) {sub.name} ({sub.subscription_id})")
            number += 1
    return "\n".join(lines)


def parse_selection(choice: str, count: int) -> list[int] | None:
    """Parses '1,3-5' style input into zero-based indexes. Returns None when the input is invalid"""
    indexes: list[int] = []
    for part in choice.split(","):
        part = part.strip()
        if not part:
            continue
        start, dash, end = part.partition("-")
        if not start.strip().isdigit() or (dash and not end.strip().isdigit()):
            return None
        first, last = int(start), int(end or start)
        if not 1 <= first <= last <= count:
            return None
        indexes.extend(i - 1 for i in range(first, last + 1) if i - 1 not in indexes)
    return indexes or None


def choose_subscriptions(subscriptions: list[Subscription], prompt: Prompt = input) -> list[Subscription]:
    """Given the sorted subscriptions, prompt the user to select which to update. Returns what was selected"""
    choice = prompt(SELECTION_PROMPT).strip()
    while True:
        if choice == "*":
            return subscriptions
        if choice == "-":
            raise SelectionCancelled
        if (indexes := parse_selection(choice, len(subscriptions))) is not None:
            return [subscriptions[i] for i in indexes]
        choice = prompt("Please enter valid subscription numbers from the list above, '*', or '-' \n: ").strip()


def choose_percentage(prompt: Prompt = input) -> int:
    while True:
        choice = prompt(f"Target sampling percentage (0-100) [{DEFAULT_SAMPLING_PERCENTAGE}]: ").strip()
        if not choice:
            return DEFAULT_SAMPLING_PERCENTAGE
        try:
            return parse_percentage(choice)
        except InvalidPercentageError as e:
            print(e)


def confirm(question: str, prompt: Prompt = input) -> bool:
    choice = prompt(f"{question} (y/n): ").lower().strip()
    while choice not in ["y", "n"]:
        choice = prompt(f"{question} (y/n): ").lower().strip()
    return choice == "y"


async def run_interactive(suppress_warnings: bool, prompt: Prompt = input) -> int:
    configure_logging()
    configure_warnings(suppress_warnings)
    target_percentage = choose_percentage(prompt)
    dry_run = confirm("Dry run? No changes will be made", prompt)
    config = SamplingConfig(target_percentage=target_percentage, dry_run=dry_run, suppress_warnings=suppress_warnings)
    try:
        async with SamplingTask(config) as task:
            subscriptions = sort_targets(await task.discover())
            print(subscription_menu(subscriptions))
            try:
                chosen = choose_subscriptions(subscriptions, prompt)
            except SelectionCancelled:
                log.info("Exiting.")
                return 0
            # the menu is a front end for the include list, chosen subscriptions are matched by id
            targets = task.select_targets(
                subscriptions, SubscriptionFilter(include=[s.subscription_id for s in chosen])
            )
            await task.process_targets(targets)
    except SamplingRunError as e:
        log.error("Sampling run aborted: %s", e)
        return 1
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Choose subscriptions from a menu and set the sampling percentage "
        "of their Application Insights components"
    )
    parser.add_argument(
        "-q",
        "--suppress-warnings",
        action="store_true",
        help="Silence Azure SDK and Python warnings",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    raise SystemExit(run(run_interactive(args.suppress_warnings)))


if __name__ == "__main__":  # pragma: no cover
    main()
