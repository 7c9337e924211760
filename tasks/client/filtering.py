# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/  Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Callable, Iterable
from functools import reduce
from typing import Any, TypeAlias

# project
from tasks.errors import FilterExhaustionFailure
from tasks.models import Subscription

Predicate: TypeAlias = Callable[[Subscription], bool]


class SubscriptionFilter:
    """Selects the subscriptions a run targets.
    :param include: list[str] | None - subscription ids or names, a subscription must match at least one if given
    :param exclude: list[str] | None - subscription ids or names, a subscription matching any of them is dropped

    Entries match by exact, case-insensitive equality with either the subscription id or its name.
    Filtering down to nothing raises `FilterExhaustionFailure`.
    """

    def __init__(self, include: Iterable[str] | None = None, exclude: Iterable[str] | None = None):
        self.include = [e for e in map(_sanitize, include or []) if e]
        self.exclude = [e for e in map(_sanitize, exclude or []) if e]

    @property
    def include_pred(self) -> Predicate:
        return p_any([matches_entry(e) for e in self.include]) if self.include else accept

    @property
    def exclude_pred(self) -> Predicate:
        return p_none([matches_entry(e) for e in self.exclude])

    def apply(self, subscriptions: Iterable[Subscription]) -> list[Subscription]:
        targets = list(subscriptions)
        if self.include:
            targets = [s for s in targets if self.include_pred(s)]
            if not targets:
                raise FilterExhaustionFailure(
                    f"No subscriptions matched the include list: {', '.join(self.include)}"
                )
        if self.exclude:
            targets = [s for s in targets if self.exclude_pred(s)]
            if not targets:
                raise FilterExhaustionFailure(
                    f"All subscriptions were removed by the exclude list: {', '.join(self.exclude)}"
                )
        return sort_targets(targets)


def target_sort_key(s: Subscription) -> tuple[str, str, str, str, str]:
    return (s.tenant_domain.casefold(), s.name.casefold(), s.tenant_domain, s.name, s.subscription_id.lower())


def sort_targets(subscriptions: Iterable[Subscription]) -> list[Subscription]:
    """Order of execution and reporting: tenant domain, then subscription name"""
    return sorted(subscriptions, key=target_sort_key)


def matches_entry(entry: str) -> Predicate:
    """Create a predicate that is satisfied when the subscription id or name equals the entry"""
    entry = _sanitize(entry)
    return lambda s: entry in (_sanitize(s.subscription_id), _sanitize(s.name))


def accept(_: Any) -> bool:
    """A predicate that is always satisfied"""
    return True


def reject(v: Any) -> bool:
    """A predicate that is never satisfied"""
    return False


def p_or(pred0: Predicate, pred1: Predicate) -> Predicate:
    """Create a predicate that is satisfied when either given predicate is satisfied"""
    return lambda v: pred0(v) or pred1(v)


def p_not(pred: Predicate) -> Predicate:
    """Create a predicate that is satisfied when the given predicate is not satisfied"""
    return lambda v: not pred(v)


def p_any(preds: list[Predicate]) -> Predicate:
    """Create a predicate that is satisfied when any of the given predicates are satisfied"""
    return reduce(lambda acc, p: p_or(p, acc), preds, reject)


def p_none(preds: list[Predicate]) -> Predicate:
    """Create a predicate that is satisfied when none of the given predicates are satisfied"""
    return p_not(p_any(preds))


def _sanitize(string: str) -> str:
    return string.strip().casefold()
