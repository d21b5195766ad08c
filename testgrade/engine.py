"""Analysis pipeline: one test file (plus optional source) -> AnalysisUnit.

    extract -> classify -> source facts -> rules -> overrides/ignores
            -> category raws -> aggregate -> per-test scores

Everything after extraction is pure computation over immutable models,
so ``analyze_many`` can fan files out across threads freely.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace

import testgrade.rules  # noqa: F401  registers every rule
from testgrade._cache import ResultCache, cache_key
from testgrade.classify import classify
from testgrade.config import DEFAULT_CONFIG, Config
from testgrade.enums import RuleSeverity, Severity
from testgrade.fallbacks import log_best_effort_failure
from testgrade.ignore import IgnoreDirectives
from testgrade.models import AnalysisUnit, Issue, ParseFailure, SourceFactModel, TestFileModel
from testgrade.parsing.source_file import extract_facts
from testgrade.parsing.test_file import extract
from testgrade.registry import RuleContext, RuleMeta, active_rules
from testgrade.scoring.aggregate import aggregate
from testgrade.scoring.categories import category_raws
from testgrade.scoring.per_test import score_per_test

logger = logging.getLogger(__name__)

# Import prefixes that point at project code rather than packages.
_LOCAL_IMPORT_PREFIXES = (".", "/", "@/", "~/", "src/")


def _imported_names(model: TestFileModel) -> list[str]:
    return [
        name
        for imp in model.imports
        if imp.source.startswith(_LOCAL_IMPORT_PREFIXES)
        for name in imp.names
    ]


def _source_facts(
    model: TestFileModel,
    source_source: bytes | str | None,
    source_path: str,
    config: Config,
) -> SourceFactModel:
    if source_source is None or config.skip_source_analysis:
        return SourceFactModel.unknown()
    try:
        return extract_facts(source_source, _imported_names(model), source_path)
    except Exception as exc:
        log_best_effort_failure(logger, f"extract source facts from {source_path or '<source>'}", exc)
        return SourceFactModel.unknown()


def run_rules(ctx: RuleContext, rules: Iterable[RuleMeta]) -> tuple[list[Issue], list[str]]:
    """Run every rule; a rule that raises contributes nothing and is reported."""
    issues: list[Issue] = []
    failed: list[str] = []
    for meta in rules:
        try:
            issues.extend(meta.detect(ctx))
        except Exception as exc:
            log_best_effort_failure(logger, f"run rule {meta.id} on {ctx.model.path}", exc)
            failed.append(meta.id)
    return issues, failed


def apply_overrides(issues: Iterable[Issue], overrides: dict[str, RuleSeverity]) -> list[Issue]:
    adjusted = []
    for item in issues:
        override = overrides.get(item.rule)
        if override is None:
            adjusted.append(item)
        elif override != RuleSeverity.OFF:
            adjusted.append(replace(item, severity=Severity(str(override))))
    return adjusted


def analyze(
    test_source: bytes | str,
    test_path: str,
    source_source: bytes | str | None = None,
    config: Config = DEFAULT_CONFIG,
    *,
    source_path: str = "",
    rules: Sequence[RuleMeta] | None = None,
) -> AnalysisUnit:
    """Analyze one test file.

    Raises ParseFailure when the test file is not JS/TS at all. Every other
    degradation (missing or unparseable source, a failing rule, recovered
    syntax errors) lowers the score and shows up on the breakdown instead.
    """
    model = extract(test_source, test_path, config.framework)
    test_type = classify(test_path, model.imports, model.framework)
    facts = _source_facts(model, source_source, source_path, config)
    ctx = RuleContext(model=model, facts=facts, test_type=test_type, smells=config.smells)

    active = active_rules(config.rules, rules)
    found, failed = run_rules(ctx, active)
    found = apply_overrides(found, config.rules)
    directives = IgnoreDirectives.parse(model.lines)
    if directives:
        found = directives.filter(found)
    issues = sorted(found, key=Issue.sort_key)

    by_rule: dict[str, list[Issue]] = defaultdict(list)
    for item in issues:
        by_rule[item.rule].append(item)
    raws = category_raws(ctx, active, by_rule, failed)

    asserted = sum(len(t.assertions) for t in model.active_tests)
    score, breakdown = aggregate(
        raws,
        test_type,
        issues,
        weights=config.weights,
        penalties=config.penalties,
        zero_assertions=asserted == 0,
    )
    breakdown = replace(
        breakdown,
        source_available=facts.available,
        partial_parse=model.partial,
        source_partial=facts.partial,
        failed_rules=tuple(sorted(set(failed))),
    )

    per_test = None
    if config.per_test:
        per_test = tuple(score_per_test(
            model.tests,
            issues,
            score,
            test_type,
            weights=config.weights,
            penalties=config.penalties,
        ))

    logger.debug("%s: %s (%s, %d tests, %d issues)", test_path, score, test_type, len(model.tests), len(issues))
    return AnalysisUnit(
        path=test_path,
        framework=model.framework,
        test_type=test_type,
        tests=model.tests,
        issues=tuple(issues),
        breakdown=breakdown,
        score=score,
        per_test=per_test,
    )


# ── Batch ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class AnalysisJob:
    test_path: str
    test_source: bytes | str
    source_source: bytes | str | None = None
    source_path: str = ""


@dataclass(frozen=True)
class BatchResult:
    """One job's outcome: a unit, or the ParseFailure that prevented one."""

    job: AnalysisJob
    unit: AnalysisUnit | None = None
    failure: ParseFailure | None = None

    @property
    def ok(self) -> bool:
        return self.unit is not None


def _as_bytes(content: bytes | str | None) -> bytes | None:
    if content is None or isinstance(content, bytes):
        return content
    return content.encode("utf-8", errors="surrogatepass")


def _run_job(job: AnalysisJob, config: Config, cache: ResultCache | None) -> BatchResult:
    def compute() -> AnalysisUnit:
        return analyze(
            job.test_source,
            job.test_path,
            job.source_source,
            config,
            source_path=job.source_path,
        )

    try:
        if cache is None:
            unit = compute()
        else:
            key = cache_key(
                job.test_path,
                _as_bytes(job.test_source),
                _as_bytes(job.source_source),
                config.fingerprint(),
            )
            unit = cache.get_or_compute(key, compute)
    except ParseFailure as exc:
        return BatchResult(job=job, failure=exc)
    return BatchResult(job=job, unit=unit)


def analyze_many(
    jobs: Sequence[AnalysisJob],
    config: Config = DEFAULT_CONFIG,
    *,
    max_workers: int | None = None,
    cache: ResultCache | None = None,
) -> list[BatchResult]:
    """Analyze independent files on a thread pool; results keep input order."""
    if not jobs:
        return []
    workers = max_workers or max(1, min(len(jobs), 8))
    results: list[BatchResult | None] = [None] * len(jobs)
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(_run_job, job, config, cache): idx
            for idx, job in enumerate(jobs)
        }
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return results


__all__ = [
    "AnalysisJob",
    "BatchResult",
    "analyze",
    "analyze_many",
    "apply_overrides",
    "run_rules",
]
