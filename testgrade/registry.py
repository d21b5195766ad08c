"""Canonical rule registry: the single source of truth for rule metadata.

Every rule self-describes here (id, default severity, scoring-impact tag,
implemented flag) at its own registration site. The engine, config
validation and category scoring all iterate the registry instead of
keeping their own lists, so adding a rule touches one module.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from testgrade.enums import Category, Framework, RuleSeverity, Severity, TestType
from testgrade.models import Fix, Issue, SourceFactModel, Span, TestFileModel
from testgrade.scoring.policy import DEFAULT_SMELLS, SmellThresholds


@dataclass(frozen=True)
class RuleContext:
    """Everything a rule may look at. Rules must not reach outside it."""

    model: TestFileModel
    facts: SourceFactModel
    test_type: TestType
    smells: SmellThresholds = DEFAULT_SMELLS

    @property
    def framework(self) -> Framework:
        return self.model.framework


@dataclass(frozen=True)
class CategoryDelta:
    """A rule's effect on its category's raw score.

    ``points`` adjusts the raw score directly. ``covered``/``total`` report
    source-fact coverage (throw conditions, boundary comparisons) and are
    only meaningful for rules that require source facts.
    """

    points: float = 0.0
    covered: int = 0
    total: int = 0


Detector = Callable[[RuleContext], list[Issue]]
Contribution = Callable[[list[Issue], RuleContext], CategoryDelta]


@dataclass(frozen=True)
class RuleMeta:
    id: str
    display: str  # Human-readable name
    severity: Severity  # Default severity
    category: Category | None  # None = penalty-only
    guidance: str  # One-line fix suggestion attached to every issue
    detect: Detector | None = None
    contribute: Contribution | None = None
    requires_source: bool = False  # Needs source facts to say anything
    implemented: bool = True  # Stubs never dispatch and never score

    @property
    def penalty_only(self) -> bool:
        return self.category is None

    @property
    def active(self) -> bool:
        return self.implemented and self.detect is not None


RULES: dict[str, RuleMeta] = {}


def register_rule(meta: RuleMeta) -> RuleMeta:
    """Add a rule. Duplicate ids are a programming error."""
    if meta.id in RULES:
        raise ValueError(f"Rule already registered: {meta.id}")
    if meta.penalty_only and meta.contribute is not None:
        raise ValueError(f"Penalty-only rule {meta.id} cannot contribute to a category")
    RULES[meta.id] = meta
    return meta


def rule(
    rule_id: str,
    *,
    display: str,
    severity: Severity,
    category: Category | None,
    guidance: str,
    requires_source: bool = False,
    implemented: bool = True,
) -> Callable[[Detector], Detector]:
    """Decorator registering a detector function under ``rule_id``."""

    def decorate(fn: Detector) -> Detector:
        register_rule(RuleMeta(
            id=rule_id,
            display=display,
            severity=severity,
            category=category,
            guidance=guidance,
            detect=fn,
            requires_source=requires_source,
            implemented=implemented,
        ))
        return fn

    return decorate


def contribution(rule_id: str) -> Callable[[Contribution], Contribution]:
    """Decorator attaching a category contribution to an already registered rule."""

    def decorate(fn: Contribution) -> Contribution:
        meta = RULES[rule_id]
        if meta.penalty_only:
            raise ValueError(f"Penalty-only rule {rule_id} cannot contribute to a category")
        RULES[rule_id] = replace(meta, contribute=fn)
        return fn

    return decorate


def issue(
    rule_id: str,
    message: str,
    span: Span,
    *,
    severity: Severity | None = None,
    fix: Fix | None = None,
) -> Issue:
    """Build an Issue whose scoring-impact tag comes from the registry."""
    meta = RULES[rule_id]
    return Issue(
        rule=rule_id,
        severity=severity or meta.severity,
        message=message,
        span=span,
        category=meta.category,
        suggestion=meta.guidance,
        fix=fix,
    )


def rule_ids() -> list[str]:
    return sorted(RULES)


def get_rule(rule_id: str) -> RuleMeta:
    return RULES[rule_id]


def active_rules(
    overrides: dict[str, RuleSeverity] | None = None,
    rules: Iterable[RuleMeta] | None = None,
) -> list[RuleMeta]:
    """Implemented rules not switched off by config, in id order."""
    overrides = overrides or {}
    pool = list(rules) if rules is not None else list(RULES.values())
    return sorted(
        (
            meta for meta in pool
            if meta.active and overrides.get(meta.id) != RuleSeverity.OFF
        ),
        key=lambda meta: meta.id,
    )


__all__ = [
    "CategoryDelta",
    "RULES",
    "RuleContext",
    "RuleMeta",
    "active_rules",
    "contribution",
    "get_rule",
    "issue",
    "register_rule",
    "rule",
    "rule_ids",
]
