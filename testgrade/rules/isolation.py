"""Test Isolation rules: state that leaks between tests."""

from __future__ import annotations

import re
from collections import defaultdict

from testgrade.enums import Category, Framework, Severity
from testgrade.models import Binding, Issue, TestCase
from testgrade.registry import CategoryDelta, RuleContext, contribution, issue, rule
from testgrade.rules._helpers import capped

TI = Category.TEST_ISOLATION

SHARED_STATE_BASE, SHARED_STATE_PER_TEST, SHARED_STATE_CAP = 8, 4, 25
ORDER_POINTS, ORDER_CAP = 5, 15
CLEANUP_POINTS, CLEANUP_CAP = 3, 6
COUPLING_POINTS, COUPLING_CAP = 2, 15

_PER_TEST_HOOKS = frozenset({"beforeEach", "afterEach"})
_SEQUENTIAL_NAME_RE = re.compile(r"^\s*(?:step\s*)?(\d+)\s*[:.)\-]", re.IGNORECASE)

_SPY_RESTORES = ("restoreAllMocks", "mockRestore", "restore")
_TIMER_RESTORES = ("useRealTimers", "restore", "uninstall")


def _unreset(binding: Binding) -> bool:
    return not any(hook in _PER_TEST_HOOKS for hook in binding.reset_by)


def _beforeall_only(binding: Binding) -> bool:
    return _unreset(binding) and "beforeAll" in binding.reset_by


# ── shared-state ──────────────────────────────────────────────


@rule(
    "shared-state",
    display="Shared mutable state",
    severity=Severity.WARNING,
    category=TI,
    guidance="Declare the value inside the test or reset it in beforeEach",
)
def detect_shared_state(ctx: RuleContext) -> list[Issue]:
    found = []
    for binding in ctx.model.bindings:
        if not binding.mutated_in or not _unreset(binding) or _beforeall_only(binding):
            continue
        count = len(binding.mutated_in)
        found.append(issue(
            "shared-state",
            f"'{binding.name}' is shared across tests and mutated in {count} test(s) without a reset",
            binding.span,
        ))
    return found


@contribution("shared-state")
def shared_state_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    flagged = {i.span.line for i in issues}
    points = 0
    for binding in ctx.model.bindings:
        if binding.span.line in flagged and binding.mutated_in:
            points += SHARED_STATE_BASE + SHARED_STATE_PER_TEST * len(binding.mutated_in)
    return CategoryDelta(points=-min(points, SHARED_STATE_CAP))


# ── order-dependent-tests ─────────────────────────────────────


def _sequential_groups(tests: list[TestCase]) -> list[list[TestCase]]:
    groups: dict[tuple[str, ...], list[TestCase]] = defaultdict(list)
    for test in tests:
        if _SEQUENTIAL_NAME_RE.match(test.name):
            groups[test.describe_chain].append(test)
    return [group for _chain, group in sorted(groups.items()) if len(group) >= 2]


@rule(
    "order-dependent-tests",
    display="Order-dependent tests",
    severity=Severity.WARNING,
    category=TI,
    guidance="Give every test its own setup so tests pass in any order and in isolation",
)
def detect_order_dependence(ctx: RuleContext) -> list[Issue]:
    found = []
    for binding in ctx.model.bindings:
        if _beforeall_only(binding) and len(binding.mutated_in) >= 2:
            found.append(issue(
                "order-dependent-tests",
                f"'{binding.name}' is set up once in beforeAll and mutated by "
                f"{len(binding.mutated_in)} tests; later tests see earlier changes",
                binding.span,
            ))
    for group in _sequential_groups(ctx.model.active_tests):
        names = ", ".join(f"'{t.name}'" for t in group[:3])
        found.append(issue(
            "order-dependent-tests",
            f"Tests named as numbered steps ({names}) suggest they rely on running in order",
            group[1].span,
        ))
    return found


@contribution("order-dependent-tests")
def order_dependence_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), ORDER_POINTS, ORDER_CAP))


# ── missing-cleanup ───────────────────────────────────────────


def _restores(calls: list[str], suffixes: tuple[str, ...]) -> bool:
    return any(call.rsplit(".", 1)[-1] in suffixes for call in calls)


@rule(
    "missing-cleanup",
    display="Missing mock cleanup",
    severity=Severity.INFO,
    category=TI,
    guidance="Restore spies and real timers in afterEach (restoreAllMocks/useRealTimers)",
)
def detect_missing_cleanup(ctx: RuleContext) -> list[Issue]:
    # Cypress restores cy.spy/cy.stub between tests on its own.
    if ctx.framework == Framework.CYPRESS:
        return []
    calls = [call for hook in ctx.model.hooks for call in hook.calls]
    calls.extend(call for test in ctx.model.tests for call in test.calls)
    found = []
    spies = [m for m in ctx.model.mocks if m.kind == "spy"]
    if spies and not _restores(calls, _SPY_RESTORES):
        found.append(issue(
            "missing-cleanup",
            f"{len(spies)} spy(ies) are never restored, so the real implementation stays replaced",
            spies[0].span,
        ))
    timers = [m for m in ctx.model.mocks if m.kind == "timer"]
    if timers and not _restores(calls, _TIMER_RESTORES):
        found.append(issue(
            "missing-cleanup",
            "Fake timers are installed but real timers are never restored",
            timers[0].span,
        ))
    return found


@contribution("missing-cleanup")
def missing_cleanup_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), CLEANUP_POINTS, CLEANUP_CAP))


_MOCK_RECORD_RE = re.compile(r"\.(calls|instances)$")


@rule(
    "implementation-coupling",
    display="Assertion on mock internals",
    severity=Severity.INFO,
    category=TI,
    guidance="Verify return values or side effects instead of the mock's recorded calls",
)
def detect_implementation_coupling(ctx: RuleContext) -> list[Issue]:
    found = []
    for test in ctx.model.active_tests:
        for assertion in test.assertions:
            match = _MOCK_RECORD_RE.search(assertion.subject)
            if match is None:
                continue
            found.append(issue(
                "implementation-coupling",
                f"Asserting on mock.{match.group(1)} couples '{test.name}' to how the code is implemented",
                assertion.span,
            ))
    return found


@contribution("implementation-coupling")
def implementation_coupling_delta(issues: list[Issue], ctx: RuleContext) -> CategoryDelta:
    return CategoryDelta(points=capped(len(issues), COUPLING_POINTS, COUPLING_CAP))
