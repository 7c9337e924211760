# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.


class SamplingRunError(Exception):
    """Base class for conditions that halt a sampling run"""


class AuthenticationFailure(SamplingRunError):
    pass


class TotalDiscoveryFailure(SamplingRunError):
    pass


class FilterExhaustionFailure(SamplingRunError):
    pass


class ContextSwitchFailure(SamplingRunError):
    """Raised when a subscription cannot be used as the execution context, the run skips it"""

    def __init__(self, subscription_id: str, reason: str) -> None:
        super().__init__(f"Unable to switch context to subscription {subscription_id}: {reason}")
        self.subscription_id = subscription_id
        self.reason = reason
