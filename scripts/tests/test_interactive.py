# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from contextlib import redirect_stdout
from io import StringIO
from unittest import TestCase

# 3p
from azure.core.exceptions import ClientAuthenticationError

# project
from scripts.interactive import (
    Prompt,
    SelectionCancelled,
    choose_percentage,
    choose_subscriptions,
    confirm,
    parse_selection,
    run_interactive,
    subscription_menu,
)
from tasks.models import Tenant, TelemetryResource
from tasks.tests.common import FakeManagementClient, TaskTestCase, subscription

contoso = Tenant("11111111-1111-1111-1111-111111111111", "contoso.onmicrosoft.com")
fabrikam = Tenant("22222222-2222-2222-2222-222222222222", "fabrikam.onmicrosoft.com")

dev = subscription("77602a31-36b2-4417-a27c-9071107ca3e6", "Dev", contoso)
staging = subscription("0b62a232-b8db-4380-9da6-640f7272ed6d", "Staging", contoso)
prod = subscription("a062baee-fdd3-4784-beb4-d817f591422c", "Prod", fabrikam)

SORTED = [dev, staging, prod]


def answers(*responses: str) -> Prompt:
    """A prompt that replies with the given responses in order"""
    it = iter(responses)
    return lambda _: next(it)


class TestSubscriptionMenu(TestCase):
    def test_grouped_by_tenant_and_numbered_in_order(self):
        self.assertEqual(
            subscription_menu(SORTED).splitlines(),
            [
                "Tenant: contoso.onmicrosoft.com",
                f"\t  1) Dev ({dev.subscription_id})",
                f"\t  2) Staging ({staging.subscription_id})",
                "Tenant: fabrikam.onmicrosoft.com",
                f"\t  3) Prod ({prod.subscription_id})",
            ],
        )


class TestParseSelection(TestCase):
    def test_numbers_and_ranges(self):
        self.assertEqual(parse_selection("1, 3-5", 5), [0, 2, 3, 4])

    def test_duplicates_are_dropped(self):
        self.assertEqual(parse_selection("2,2,1-2", 3), [1, 0])

    def test_invalid(self):
        for choice in ("", "0", "4", "3-1", "2-9", "a", "1-", "-2", "1,,x"):
            with self.subTest(choice=choice):
                self.assertIsNone(parse_selection(choice, 3))


class TestPrompts(TestCase):
    def test_choose_all(self):
        self.assertEqual(choose_subscriptions(SORTED, answers("*")), SORTED)

    def test_choose_some(self):
        self.assertEqual(choose_subscriptions(SORTED, answers("3,1")), [prod, dev])

    def test_invalid_choice_prompts_again(self):
        self.assertEqual(choose_subscriptions(SORTED, answers("9", "nope", "2")), [staging])

    def test_cancel(self):
        with self.assertRaises(SelectionCancelled):
            choose_subscriptions(SORTED, answers("-"))

    def test_percentage_defaults_to_one(self):
        self.assertEqual(choose_percentage(answers("")), 1)

    def test_invalid_percentage_prompts_again(self):
        with redirect_stdout(StringIO()) as out:
            self.assertEqual(choose_percentage(answers("abc", "150", "7%")), 7)
        self.assertEqual(out.getvalue().count("Sampling percentage must be an integer between 0 and 100"), 2)

    def test_confirm(self):
        self.assertTrue(confirm("Dry run?", answers("maybe", " Y ")))
        self.assertFalse(confirm("Dry run?", answers("n")))


class TestRunInteractive(TaskTestCase):
    TASK_NAME = "sampling_task"

    def setUp(self) -> None:
        super().setUp()
        self.api = TelemetryResource("api", "rg", 100)
        self.web = TelemetryResource("web", "rg", 100)
        self.client = FakeManagementClient(
            tenants=[fabrikam, contoso],
            subscriptions={fabrikam.tenant_id: [prod], contoso.tenant_id: [dev]},
            resources={prod.subscription_id: [self.api], dev.subscription_id: [self.web]},
        )
        self.patch("CloudManagementClient", return_value=self.client)
        self.patch_path("scripts.interactive.configure_logging")
        self.patch_path("scripts.interactive.configure_warnings")

    async def test_updates_chosen_subscription(self):
        with redirect_stdout(StringIO()) as out:
            exit_code = await run_interactive(False, answers("5", "n", "2"))

        self.assertEqual(exit_code, 0)
        self.assertEqual(
            [(context.subscription_id, resource, pct) for context, resource, pct in self.client.update_calls],
            [(prod.subscription_id, self.api, 5)],
        )
        output = out.getvalue()
        self.assertIn(f"  2) Prod ({prod.subscription_id})", output)
        self.assertIn("Target sampling percentage: 5% | Dry run: disabled", output)
        self.assertTrue(output.rstrip().endswith("Done."))

    async def test_dry_run_all(self):
        with redirect_stdout(StringIO()) as out:
            exit_code = await run_interactive(False, answers("", "y", "*"))

        self.assertEqual(exit_code, 0)
        self.assertEqual(self.client.update_calls, [])
        self.assertIn("DRY RUN | Would update rg/web sampling percentage to 1%", out.getvalue())
        self.assertIn("DRY RUN | Would update rg/api sampling percentage to 1%", out.getvalue())

    async def test_cancel_changes_nothing(self):
        with redirect_stdout(StringIO()) as out:
            exit_code = await run_interactive(False, answers("5", "n", "-"))

        self.assertEqual(exit_code, 0)
        self.assertEqual(self.client.update_calls, [])
        self.assertNotIn("Done.", out.getvalue())

    async def test_authentication_failure(self):
        self.credential.get_token.side_effect = ClientAuthenticationError("No identity")

        with redirect_stdout(StringIO()):
            self.assertEqual(await run_interactive(False, answers("5", "n")), 1)
