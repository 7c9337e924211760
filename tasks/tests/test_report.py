# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from unittest import TestCase

# project
from tasks.models import (
    ActionStatus,
    ResourceAction,
    SubscriptionResult,
    SubscriptionStatus,
    Tenant,
    TelemetryResource,
)
from tasks.report import (
    DONE_MARKER,
    SEPARATOR,
    RunReport,
    action_line,
    resource_table,
    run_header,
    run_summary,
    subscription_section,
)
from tasks.tests.common import subscription

contoso = Tenant("11111111-1111-1111-1111-111111111111", "contoso.onmicrosoft.com")
prod = subscription("a062baee-fdd3-4784-beb4-d817f591422c", "Prod", contoso)
dev = subscription("77602a31-36b2-4417-a27c-9071107ca3e6", "Dev", contoso)

api = TelemetryResource("api", "rg-a", 100)
api_after = TelemetryResource("api", "rg-a", 5)

processed = SubscriptionResult(
    prod,
    SubscriptionStatus.PROCESSED,
    before=(api,),
    actions=(ResourceAction(api, 5, ActionStatus.UPDATED),),
    after=(api_after,),
)


class TestReportLines(TestCase):
    def test_run_header(self):
        self.assertEqual(run_header(5, False), "Target sampling percentage: 5% | Dry run: disabled")
        self.assertEqual(run_header(1, True), "Target sampling percentage: 1% | Dry run: enabled")

    def test_resource_table(self):
        table = resource_table("Before", [api, TelemetryResource("worker-long-name", "rg-b", 50)])
        lines = table.splitlines()
        self.assertEqual(lines[0], "Before:")
        self.assertEqual(lines[1].split(), ["Name", "ResourceGroup", "SamplingPercentage"])
        self.assertEqual(lines[3].split(), ["api", "rg-a", "100"])
        self.assertEqual(lines[4].split(), ["worker-long-name", "rg-b", "50"])

    def test_action_lines(self):
        self.assertEqual(
            action_line(ResourceAction(api, 5, ActionStatus.UPDATED)), "Updated rg-a/api sampling percentage to 5%"
        )
        self.assertEqual(
            action_line(ResourceAction(api, 1, ActionStatus.WOULD_UPDATE)),
            "DRY RUN | Would update rg-a/api sampling percentage to 1%",
        )
        self.assertEqual(
            action_line(ResourceAction(api, 5, ActionStatus.FAILED, "Conflict")),
            "WARNING: Failed to update rg-a/api: Conflict",
        )


class TestSubscriptionSection(TestCase):
    def test_processed(self):
        section = subscription_section(processed)
        lines = section.splitlines()
        self.assertEqual(lines[0], SEPARATOR)
        self.assertEqual(
            lines[1], f"Subscription: Prod ({prod.subscription_id}) | Tenant: contoso.onmicrosoft.com"
        )
        self.assertEqual(lines[2], "Before:")
        self.assertIn("Updated rg-a/api sampling percentage to 5%", lines)
        self.assertIn("After:", lines)
        self.assertLess(lines.index("Before:"), lines.index("After:"))
        self.assertEqual(lines[-1].split(), ["api", "rg-a", "5"])

    def test_after_unavailable(self):
        section = subscription_section(processed._replace(after=None))
        self.assertTrue(section.endswith("After: unavailable, resources could not be listed"))

    def test_no_resources(self):
        section = subscription_section(SubscriptionResult(dev, SubscriptionStatus.NO_RESOURCES))
        self.assertTrue(section.endswith("No resources found."))
        self.assertNotIn("Before:", section)

    def test_skipped(self):
        section = subscription_section(SubscriptionResult(dev, SubscriptionStatus.SKIPPED, error="Not found"))
        self.assertTrue(section.endswith("Skipped: Not found"))


class TestRunReport(TestCase):
    def test_run_summary(self):
        results = [
            processed,
            SubscriptionResult(dev, SubscriptionStatus.NO_RESOURCES),
            SubscriptionResult(dev, SubscriptionStatus.SKIPPED, error="Not found"),
            processed._replace(
                actions=(
                    ResourceAction(api, 5, ActionStatus.FAILED, "Conflict"),
                    ResourceAction(api, 5, ActionStatus.WOULD_UPDATE),
                )
            ),
        ]
        self.assertEqual(
            run_summary(results),
            "Processed 2 subscriptions (1 without resources, 1 skipped): 1 updated, 1 would update, 1 failed",
        )

    def test_report_writes_in_order_and_ends_with_done(self):
        written: list[str] = []
        report = RunReport(written.append)

        report.start(5, False)
        report.add(processed)
        report.add(SubscriptionResult(dev, SubscriptionStatus.NO_RESOURCES))
        report.finish()

        self.assertEqual(written[0], run_header(5, False))
        self.assertTrue(written[1].startswith(f"{SEPARATOR}\nSubscription: Prod"))
        self.assertTrue(written[2].startswith(f"{SEPARATOR}\nSubscription: Dev"))
        self.assertEqual(written[3], SEPARATOR)
        self.assertEqual(written[-1], DONE_MARKER)
        self.assertEqual(report.results, [processed, SubscriptionResult(dev, SubscriptionStatus.NO_RESOURCES)])
