#!/usr/bin/env python
# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# usage: start_job.py [-h] [-s SUBSCRIPTION] [-g RESOURCE_GROUP] [-a ACCOUNT] [-r RUNBOOK]
#                     [-p PERCENTAGE] [-i INCLUDE] [-e EXCLUDE] [-d] [-q]
#
# Start the sampling runbook in Azure Automation and stream its output until the job finishes
#
# Automation settings default to the SUBSCRIPTION_ID, RESOURCE_GROUP, AUTOMATION_ACCOUNT
# and RUNBOOK_NAME environment variables. The remaining flags are forwarded to the runbook.

# stdlib
import argparse
from asyncio import run, sleep
from collections.abc import Callable, Sequence
from logging import INFO, WARNING, basicConfig, getLogger
from os import environ
from typing import Final
from uuid import uuid4

# 3p
from azure.identity.aio import DefaultAzureCredential
from azure.mgmt.automation.aio import AutomationClient
from azure.mgmt.automation.models import JobCreateParameters, JobStream, RunbookAssociationProperty
from tenacity import retry, stop_after_attempt, wait_exponential_jitter

# project
from config.env import (
    AUTOMATION_ACCOUNT_SETTING,
    DEFAULT_SAMPLING_PERCENTAGE,
    RESOURCE_GROUP_SETTING,
    RUNBOOK_NAME_SETTING,
    SUBSCRIPTION_ID_SETTING,
    MissingConfigOptionError,
    get_config_option,
    parse_percentage,
    split_entries,
)
from tasks.client.management_client import collect

log = getLogger("start_job")

MAX_ATTEMPTS: Final = 3
POLL_INTERVAL_SECONDS: Final = 10
TERMINAL_STATUSES: Final = frozenset({"completed", "failed", "stopped", "suspended"})


class JobStreamTail:
    """Prints each output stream record of a job once, in the order the job produced them"""

    def __init__(self, client: AutomationClient, resource_group: str, account: str, job_name: str) -> None:
        self.client = client
        self.resource_group = resource_group
        self.account = account
        self.job_name = job_name
        self.seen: set[str] = set()

    async def poll(self, write: Callable[[str], object] = print) -> int:
        streams = await collect(self.client.job_stream.list_by_job(self.resource_group, self.account, self.job_name))
        new_streams = [s for s in streams if s.job_stream_id and s.job_stream_id not in self.seen]
        for stream in sorted(new_streams, key=lambda s: (s.time is None, s.time)):
            self.seen.add(stream.job_stream_id)  # type: ignore[arg-type]
            write(format_stream(stream))
        return len(new_streams)

    async def status(self) -> str:
        job = await self.client.job.get(self.resource_group, self.account, self.job_name)
        return str(job.status or "")


def format_stream(stream: JobStream) -> str:
    text = (stream.summary or stream.stream_text or "").rstrip()
    stream_type = str(stream.stream_type or "Output")
    if stream_type.lower() == "output":
        return text
    return f"{stream_type.upper()}: {text}"


def runbook_arguments(args: argparse.Namespace) -> list[str]:
    """The sampling task command line for the forwarded options, lists are passed comma separated"""
    arguments = ["--percentage", str(args.percentage)]
    if include := split_entries(args.include):
        arguments += ["--include", ",".join(include)]
    if exclude := split_entries(args.exclude):
        arguments += ["--exclude", ",".join(exclude)]
    if args.dry_run:
        arguments.append("--dry-run")
    if args.suppress_warnings:
        arguments.append("--suppress-warnings")
    return arguments


def runbook_parameters(args: argparse.Namespace) -> dict[str, str]:
    """Python runbooks get their parameters positionally in sys.argv, in the order they are given here"""
    return {f"arg{i}": argument for i, argument in enumerate(runbook_arguments(args), start=1)}


@retry(stop=stop_after_attempt(MAX_ATTEMPTS), wait=wait_exponential_jitter(max=30), reraise=True)
async def start_job(
    client: AutomationClient,
    resource_group: str,
    account: str,
    job_name: str,
    runbook: str,
    parameters: dict[str, str],
) -> None:
    """Every attempt creates the job under the same name"""
    await client.job.create(
        resource_group,
        account,
        job_name,
        JobCreateParameters(runbook=RunbookAssociationProperty(name=runbook), parameters=parameters),
    )


async def tail_job(tail: JobStreamTail, poll_interval: float = POLL_INTERVAL_SECONDS) -> str:
    """Streams job output until the job reaches a terminal status, which is returned"""
    last_status = ""
    while True:
        await tail.poll()
        status = await tail.status()
        if status != last_status:
            log.info("Job %s is %s", tail.job_name, status)
            last_status = status
        if status.lower() in TERMINAL_STATUSES:
            # streams can land after the status flips
            await tail.poll()
            return status
        await sleep(poll_interval)


async def run_job(args: argparse.Namespace, poll_interval: float = POLL_INTERVAL_SECONDS) -> int:
    async with (
        DefaultAzureCredential() as cred,
        AutomationClient(cred, args.subscription) as client,
    ):
        parameters = runbook_parameters(args)
        job_name = str(uuid4())
        await start_job(client, args.resource_group, args.account, job_name, args.runbook, parameters)
        log.info("Started job %s for runbook %s with parameters %s", job_name, args.runbook, parameters)
        status = await tail_job(JobStreamTail(client, args.resource_group, args.account, job_name), poll_interval)
    if status.lower() != "completed":
        log.error("Job %s finished with status %s", job_name, status)
        return 1
    return 0


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Start the sampling runbook in Azure Automation and stream its output until the job finishes"
    )
    parser.add_argument("-s", "--subscription", default=environ.get(SUBSCRIPTION_ID_SETTING))
    parser.add_argument("-g", "--resource-group", default=environ.get(RESOURCE_GROUP_SETTING))
    parser.add_argument("-a", "--account", default=environ.get(AUTOMATION_ACCOUNT_SETTING))
    parser.add_argument("-r", "--runbook", default=environ.get(RUNBOOK_NAME_SETTING))
    parser.add_argument("-p", "--percentage", type=parse_percentage, default=DEFAULT_SAMPLING_PERCENTAGE)
    parser.add_argument("-i", "--include", action="append", default=[])
    parser.add_argument("-e", "--exclude", action="append", default=[])
    parser.add_argument("-d", "--dry-run", action="store_true")
    parser.add_argument("-q", "--suppress-warnings", action="store_true")
    args = parser.parse_args(argv)

    for option, setting in (
        ("subscription", SUBSCRIPTION_ID_SETTING),
        ("resource_group", RESOURCE_GROUP_SETTING),
        ("account", AUTOMATION_ACCOUNT_SETTING),
        ("runbook", RUNBOOK_NAME_SETTING),
    ):
        if not getattr(args, option):
            setattr(args, option, get_config_option(setting))
    return args


def main(argv: Sequence[str] | None = None) -> None:
    basicConfig(level=INFO)
    getLogger("azure").setLevel(WARNING)
    try:
        args = parse_args(argv)
    except MissingConfigOptionError as e:
        log.error("%s", e)
        raise SystemExit(1) from None
    raise SystemExit(run(run_job(args)))


if __name__ == "__main__":  # pragma: no cover
    main()
