"""End-to-end tests for testgrade.engine: analyze and analyze_many."""

from __future__ import annotations

import pytest

from testgrade._cache import ResultCache
from testgrade.config import DEFAULT_CONFIG, config_from_dict
from testgrade.engine import AnalysisJob, analyze, analyze_many, apply_overrides
from testgrade.enums import Category, Evidence, Framework, RuleSeverity, Severity, TestType
from testgrade.models import Issue, ParseFailure, Span
from testgrade.parsing import is_available
from testgrade.registry import RuleMeta
from testgrade.scoring.policy import UNKNOWN_EVIDENCE_DELTA, round_half_up


# Skip all tests if tree-sitter-language-pack is not installed.
pytestmark = pytest.mark.skipif(
    not is_available(), reason="tree-sitter-language-pack not installed"
)


# ── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def math_source():
    return """\
export function divide(a: number, b: number): number {
  if (b === 0) {
    throw new Error('Division by zero');
  }
  return a / b;
}

export function isAdult(age: number): boolean {
  return age >= 18;
}

export function greet(name: string): string {
  return `Hello, ${name}`;
}
"""


@pytest.fixture
def math_tests():
    return """\
import { describe, it, expect } from 'vitest';
import { divide, isAdult, greet } from './math';

describe('math', () => {
  it('divides two positive numbers', () => {
    expect(divide(10, 4)).toBe(2.5);
  });

  it('returns a negative quotient for a negative dividend', () => {
    expect(divide(-9, 3)).toBe(-3);
    expect(divide(0, 7)).toBe(0);
  });

  it('throws when dividing by zero', () => {
    expect(() => divide(1, 0)).toThrow('Division by zero');
  });

  it('treats 18 as the adult boundary', () => {
    expect(isAdult(18)).toBe(true);
    expect(isAdult(17)).toBe(false);
  });

  it('greets an empty name with a bare salutation', () => {
    expect(greet('')).toBe('Hello, ');
  });
});
"""


@pytest.fixture
def sloppy_tests():
    return """\
import { parseAmount, applyDiscount } from './pricing';

let counter = 0;

describe('pricing', () => {
  it('parses an amount', () => {
    counter++;
    expect(parseAmount('12.50')).toBeDefined();
  });

  it('parses another amount', () => {
    counter++;
    expect(parseAmount('3.10')).toBeTruthy();
  });

  it('applies a discount', () => {
    counter++;
    expect(applyDiscount(80, 10)).toBeDefined();
  });

  it('applies a bigger discount', () => {
    counter++;
    expect(applyDiscount(60, 20)).toBeTruthy();
  });

  it('counts calls', () => {
    expect(counter).toBeTruthy();
  });
});
"""


@pytest.fixture
def pricing_source():
    return """\
export function parseAmount(text: string): number {
  const value = Number(text);
  if (Number.isNaN(value)) {
    throw new Error('Not a number');
  }
  return value;
}

export function applyDiscount(price: number, percent: number): number {
  if (percent > 100) {
    throw new RangeError('Discount above 100%');
  }
  return price - (price * percent) / 100;
}
"""


@pytest.fixture
def focused_tests():
    return """\
import { it, expect } from 'vitest';
import { divide } from './math';

it.only('divides evenly', () => {
  expect(divide(6, 3)).toBe(2);
});
"""


# ── Single file ───────────────────────────────────────────────


class TestAnalyze:
    def test_well_tested_file(self, math_tests, math_source):
        unit = analyze(math_tests, "src/math.test.ts", math_source, source_path="src/math.ts")
        assert unit.framework == Framework.VITEST
        assert unit.test_type == TestType.UNIT
        assert len(unit.tests) == 5
        assert unit.source_available
        assert unit.score.value >= 90
        assert unit.breakdown.row(Category.ERROR_COVERAGE).evidence == Evidence.MEASURED
        assert unit.breakdown.row(Category.BOUNDARY_CONDITIONS).evidence == Evidence.MEASURED

    def test_missing_source_marks_evidence_unknown(self, math_tests):
        unit = analyze(math_tests, "src/math.test.ts")
        assert not unit.source_available
        ec = unit.breakdown.row(Category.ERROR_COVERAGE)
        assert ec.evidence == Evidence.UNKNOWN
        # One error test: min(25, 5 + 8) = 13, scaled by 0.6.
        assert ec.raw == 8
        assert unit.breakdown.row(Category.BOUNDARY_CONDITIONS).evidence == Evidence.UNKNOWN

    def test_source_facts_never_lower_source_dependent_categories(self, math_tests, math_source):
        without = analyze(math_tests, "src/math.test.ts")
        with_source = analyze(math_tests, "src/math.test.ts", math_source, source_path="src/math.ts")
        for category in (Category.ERROR_COVERAGE, Category.BOUNDARY_CONDITIONS):
            assert without.breakdown.row(category).raw <= with_source.breakdown.row(category).raw

    def test_sloppy_file_scores_low(self, sloppy_tests, pricing_source, math_tests, math_source):
        sloppy = analyze(sloppy_tests, "src/pricing.test.ts", pricing_source, source_path="src/pricing.ts")
        good = analyze(math_tests, "src/math.test.ts", math_source, source_path="src/math.ts")
        assert sloppy.score.value < good.score.value
        assert sloppy.score.value < 60
        rules = {i.rule for i in sloppy.issues}
        assert "weak-assertion" in rules
        assert "shared-state" in rules
        assert "missing-error-test" in rules

    def test_no_tests(self):
        unit = analyze("import { a } from './a';\nexport const b = a;\n", "src/a.test.ts")
        assert unit.tests == ()
        assert unit.score.value == 0
        assert all(row.evidence == Evidence.NO_TESTS for row in unit.breakdown.rows)
        assert all(row.raw == 0 for row in unit.breakdown.rows)

    def test_zero_assertions_are_capped(self):
        code = """\
describe('checkout', () => {
  it('submits the order', () => {
    submitOrder({ id: 1 });
  });
});
"""
        unit = analyze(code, "src/checkout.test.js")
        assert unit.breakdown.zero_assertion_cap
        assert unit.score.value <= 30
        assert "no-assertions" in {i.rule for i in unit.issues}

    def test_deterministic(self, sloppy_tests, pricing_source):
        first = analyze(sloppy_tests, "src/pricing.test.ts", pricing_source, source_path="src/pricing.ts")
        second = analyze(sloppy_tests, "src/pricing.test.ts", pricing_source, source_path="src/pricing.ts")
        assert first == second

    def test_issues_sorted_by_position(self, sloppy_tests):
        unit = analyze(sloppy_tests, "src/pricing.test.ts")
        keys = [i.sort_key() for i in unit.issues]
        assert keys == sorted(keys)

    def test_bytes_input(self, math_tests):
        unit = analyze(math_tests.encode("utf-8"), "src/math.test.ts")
        assert len(unit.tests) == 5

    def test_not_javascript_raises(self):
        with pytest.raises(ParseFailure):
            analyze("print('hello')\n", "tests/test_hello.py")

    def test_partial_parse_flag(self):
        code = "describe('x', () => {\n  it('adds', () => {\n    expect(add(1, 2)).toBe(3);\n"
        unit = analyze(code, "src/add.test.ts")
        assert unit.breakdown.partial_parse

    def test_skip_source_analysis(self, math_tests, math_source):
        config = config_from_dict({"skip_source_analysis": True})
        unit = analyze(math_tests, "src/math.test.ts", math_source, config, source_path="src/math.ts")
        assert not unit.source_available
        assert unit.breakdown.row(Category.ERROR_COVERAGE).evidence == Evidence.UNKNOWN

    def test_lone_surrogate_is_a_parse_failure(self):
        with pytest.raises(ParseFailure):
            analyze("it('handles \ud800', () => {\n  expect(f()).toBe(1);\n});\n", "src/f.test.ts")

    def test_lone_surrogate_in_source_leaves_evidence_unknown(self, math_tests):
        unit = analyze(math_tests, "src/math.test.ts", "export const s = '\ud800';\n", source_path="src/math.ts")
        assert not unit.source_available

    def test_unknown_weight_is_redistributed(self, math_tests):
        unit = analyze(math_tests, "src/math.test.ts")
        breakdown = unit.breakdown
        # Error coverage (15) and boundary conditions (20) lack source evidence.
        assert breakdown.redistributed_weight == pytest.approx(0.4 * 35)
        assert sum(row.weight_bonus for row in breakdown.rows) == pytest.approx(14)
        assert breakdown.row(Category.ERROR_COVERAGE).weight_bonus == 0
        assert breakdown.weighted_total == round_half_up(sum(row.weighted for row in breakdown.rows))
        nominal = round_half_up(sum(row.raw * row.weight / 25 for row in breakdown.rows))
        assert breakdown.weighted_total > nominal

    def test_broken_source_is_flagged_partial(self):
        code = """\
import { f } from './f';

it('is false below the threshold', () => {
  expect(f(2)).toBe(false);
});
"""
        unit = analyze(code, "src/f.test.ts", "export function f(a) {\n  if (a > 3) {\n", source_path="src/f.ts")
        assert unit.source_available
        assert unit.breakdown.source_partial
        assert not unit.breakdown.partial_parse

    def test_clean_source_is_not_partial(self, math_tests, math_source):
        unit = analyze(math_tests, "src/math.test.ts", math_source, source_path="src/math.ts")
        assert not unit.breakdown.source_partial


class TestScoreOrdering:
    def test_trivial_assertions_score_below_specific_ones(self):
        trivial = """\
import { sum } from './sum';

describe('sum', () => {
  it('sums small numbers', () => {
    expect(1).toBe(1);
  });

  it('sums negative numbers', () => {
    expect(sum(-1, -2)).toBeDefined();
  });
});
"""
        specific = """\
import { sum } from './sum';

describe('sum', () => {
  it('sums small numbers', () => {
    expect(sum(1, 2)).toBe(3);
  });

  it('sums negative numbers', () => {
    expect(sum(-1, -2)).toBe(-3);
  });
});
"""
        weak = analyze(trivial, "src/sum.test.ts")
        strong = analyze(specific, "src/sum.test.ts")
        assert len(weak.tests) == len(strong.tests) == 2
        assert weak.score.value < strong.score.value

    def test_source_without_throws_or_comparisons_costs_little(self):
        tests = """\
import { vi, it, expect } from 'vitest';
import { log } from './logger';

it('writes the message to the console', () => {
  const spy = vi.spyOn(console, 'log');
  log('hello');
  expect(spy).toHaveBeenCalledWith('hello');
});
"""
        source = "export function log(message) {\n  console.log(message);\n}\n"
        without = analyze(tests, "src/logger.test.ts")
        with_source = analyze(tests, "src/logger.test.ts", source, source_path="src/logger.ts")
        assert with_source.source_available
        for category in (Category.ERROR_COVERAGE, Category.BOUNDARY_CONDITIONS):
            gap = with_source.breakdown.row(category).raw - without.breakdown.row(category).raw
            assert 0 <= gap <= UNKNOWN_EVIDENCE_DELTA


class TestPerTestScores:
    def test_one_score_per_test(self, math_tests):
        unit = analyze(math_tests, "src/math.test.ts")
        assert sorted(s.name for s in unit.per_test) == sorted(t.name for t in unit.tests)
        keys = [(s.score.value, s.span.line) for s in unit.per_test]
        assert keys == sorted(keys)
        assert all(0 <= s.score.value <= 100 for s in unit.per_test)

    def test_disabled(self, math_tests):
        config = config_from_dict({"per_test": False})
        assert analyze(math_tests, "src/math.test.ts", config=config).per_test is None


# ── Config interaction ────────────────────────────────────────


class TestSeverityOverrides:
    def test_focused_test_penalized_by_default(self, focused_tests):
        unit = analyze(focused_tests, "src/math.test.ts")
        (focused,) = [i for i in unit.issues if i.rule == "focused-test"]
        assert focused.severity == Severity.WARNING
        assert focused.fix is not None
        assert focused.fix.replacement == "it"

    def test_override_severity(self, focused_tests):
        config = config_from_dict({"rules": {"focused-test": "error"}})
        unit = analyze(focused_tests, "src/math.test.ts", config=config)
        (focused,) = [i for i in unit.issues if i.rule == "focused-test"]
        assert focused.severity == Severity.ERROR
        assert unit.breakdown.penalty_errors == 5

    def test_rule_off(self, focused_tests):
        default = analyze(focused_tests, "src/math.test.ts")
        config = config_from_dict({"rules": {"focused-test": "off"}})
        unit = analyze(focused_tests, "src/math.test.ts", config=config)
        assert "focused-test" not in {i.rule for i in unit.issues}
        assert unit.score.value >= default.score.value

    def test_apply_overrides(self):
        found = [
            Issue("focused-test", Severity.WARNING, "focused", Span(1)),
            Issue("debug-code", Severity.INFO, "console", Span(2)),
        ]
        adjusted = apply_overrides(found, {"focused-test": RuleSeverity.OFF, "debug-code": RuleSeverity.ERROR})
        assert [(i.rule, i.severity) for i in adjusted] == [("debug-code", Severity.ERROR)]


class TestIgnoreDirectives:
    def test_next_line_directive(self, focused_tests):
        code = focused_tests.replace(
            "it.only(", "// testgrade-ignore-next-line focused-test\nit.only(",
        )
        unit = analyze(code, "src/math.test.ts")
        assert "focused-test" not in {i.rule for i in unit.issues}

    def test_directive_for_other_rule_keeps_issue(self, focused_tests):
        code = focused_tests.replace(
            "it.only(", "// testgrade-ignore-next-line debug-code\nit.only(",
        )
        unit = analyze(code, "src/math.test.ts")
        assert "focused-test" in {i.rule for i in unit.issues}


class TestRuleIsolation:
    def test_failing_rule_is_reported_not_raised(self, math_tests):
        def explode(ctx):
            raise RuntimeError("boom")

        broken = RuleMeta(
            id="exploding-rule",
            display="Explodes",
            severity=Severity.WARNING,
            category=None,
            guidance="",
            detect=explode,
        )
        unit = analyze(math_tests, "src/math.test.ts", rules=[broken])
        assert unit.breakdown.failed_rules == ("exploding-rule",)
        assert unit.issues == ()
        assert 0 <= unit.score.value <= 100


# ── Batch ─────────────────────────────────────────────────────


class TestAnalyzeMany:
    def test_results_keep_input_order(self, math_tests, sloppy_tests, math_source):
        jobs = [
            AnalysisJob("src/math.test.ts", math_tests, math_source, "src/math.ts"),
            AnalysisJob("tests/test_hello.py", "print('hello')\n"),
            AnalysisJob("src/pricing.test.ts", sloppy_tests),
        ]
        results = analyze_many(jobs, max_workers=3)
        assert [r.job.test_path for r in results] == [j.test_path for j in jobs]
        assert results[0].ok and results[2].ok
        assert not results[1].ok
        assert isinstance(results[1].failure, ParseFailure)

    def test_undecodable_job_fails_alone(self, math_tests):
        jobs = [
            AnalysisJob("src/math.test.ts", math_tests),
            AnalysisJob("src/odd.test.ts", "it('handles \ud800', () => {});\n"),
        ]
        results = analyze_many(jobs, cache=ResultCache())
        assert results[0].ok
        assert isinstance(results[1].failure, ParseFailure)

    def test_matches_single_file_analysis(self, math_tests):
        (result,) = analyze_many([AnalysisJob("src/math.test.ts", math_tests)])
        assert result.unit == analyze(math_tests, "src/math.test.ts", config=DEFAULT_CONFIG)

    def test_cache_hits_for_identical_jobs(self, math_tests):
        cache = ResultCache()
        job = AnalysisJob("src/math.test.ts", math_tests)
        analyze_many([job], cache=cache)
        results = analyze_many([job], cache=cache)
        assert cache.hits == 1
        assert cache.misses == 1
        assert len(cache) == 1
        assert results[0].ok

    def test_empty_batch(self):
        assert analyze_many([]) == []
