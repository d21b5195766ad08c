"""Analysis configuration.

Config is a pure value: callers load it (JSON file, CLI flags, editor
settings) and hand it to ``analyze``. Keys cover per-rule severity,
caller-side threshold and ignore patterns, and scoring-constant overrides
for calibration.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

import testgrade.rules  # noqa: F401  registers every rule before validation
from testgrade.enums import Category, Framework, RuleSeverity, TestType
from testgrade.registry import RULES
from testgrade.scoring.policy import (
    DEFAULT_PENALTIES,
    DEFAULT_SMELLS,
    PenaltyPolicy,
    SmellThresholds,
    dataclass_from_overrides,
)


@dataclass(frozen=True)
class ConfigKey:
    type: type
    default: object
    description: str


CONFIG_SCHEMA: dict[str, ConfigKey] = {
    "rules": ConfigKey(dict, {},
        "Per-rule severity override {rule_id: error|warning|info|off}"),
    "threshold": ConfigKey(int, 70,
        "Pass/fail score threshold for callers (not used by the analyzer)"),
    "ignore": ConfigKey(list, [],
        "Path patterns callers skip before analysis"),
    "weights": ConfigKey(dict, {},
        "Category weight overrides {test_type: {category: weight}}; each row sums to 100"),
    "penalties": ConfigKey(dict, {},
        "Penalty overrides (per_error, per_warning, per_info, cap_error, cap_warning, cap_info)"),
    "smells": ConfigKey(dict, {},
        "AI-smell threshold overrides (SmellThresholds field names)"),
    "per_test": ConfigKey(bool, True,
        "Compute per-test scores"),
    "skip_source_analysis": ConfigKey(bool, False,
        "Treat the source file as unavailable even when one is supplied"),
    "framework": ConfigKey(str, "",
        "Force a test framework instead of detecting it (empty = detect)"),
}


@dataclass(frozen=True)
class Config:
    rules: dict[str, RuleSeverity] = field(default_factory=dict)
    threshold: int = 70
    ignore: tuple[str, ...] = ()
    weights: dict[TestType, dict[Category, int]] = field(default_factory=dict)
    penalties: PenaltyPolicy = DEFAULT_PENALTIES
    smells: SmellThresholds = DEFAULT_SMELLS
    per_test: bool = True
    skip_source_analysis: bool = False
    framework: Framework | None = None

    def fingerprint(self) -> str:
        """Stable text form used in cache keys."""
        weights = {str(t): {str(c): w for c, w in sorted(row.items())} for t, row in sorted(self.weights.items())}
        return json.dumps(
            {
                "rules": {k: str(v) for k, v in sorted(self.rules.items())},
                "weights": weights,
                "penalties": repr(self.penalties),
                "smells": repr(self.smells),
                "per_test": self.per_test,
                "skip_source_analysis": self.skip_source_analysis,
                "framework": str(self.framework or ""),
            },
            sort_keys=True,
        )


DEFAULT_CONFIG = Config()


def default_config() -> dict:
    """Return a config dict with all keys set to their defaults."""
    return {k: v.default for k, v in CONFIG_SCHEMA.items()}


def _check_type(key: str, value: object) -> None:
    expected = CONFIG_SCHEMA[key].type
    # bool is an int subclass; keep them apart.
    if expected is int and isinstance(value, bool):
        raise ValueError(f"Expected int for {key}, got: {value!r}")
    if not isinstance(value, expected):
        raise ValueError(f"Expected {expected.__name__} for {key}, got: {value!r}")


def _parse_rules(raw: dict) -> dict[str, RuleSeverity]:
    rules: dict[str, RuleSeverity] = {}
    for rule_id, severity in raw.items():
        if rule_id not in RULES:
            raise KeyError(f"Unknown rule: {rule_id}")
        try:
            rules[rule_id] = RuleSeverity(str(severity).lower())
        except ValueError as exc:
            raise ValueError(f"Invalid severity for {rule_id}: {severity!r}") from exc
    return rules


def _parse_weights(raw: dict) -> dict[TestType, dict[Category, int]]:
    by_name = {c.name.lower(): c for c in Category} | {str(c).lower(): c for c in Category}
    weights: dict[TestType, dict[Category, int]] = {}
    for type_name, row in raw.items():
        test_type = TestType(str(type_name).lower())
        if not isinstance(row, dict):
            raise ValueError(f"Weights for {type_name} must be a mapping")
        parsed: dict[Category, int] = {}
        for name, weight in row.items():
            category = by_name.get(str(name).lower())
            if category is None:
                raise KeyError(f"Unknown category: {name}")
            parsed[category] = int(weight)
        if set(parsed) != set(Category):
            raise ValueError(f"Weights for {test_type} must name all six categories")
        if sum(parsed.values()) != 100 or any(w < 0 for w in parsed.values()):
            raise ValueError(f"Weights for {test_type} must be non-negative and sum to 100")
        weights[test_type] = parsed
    return weights


def config_from_dict(raw: dict) -> Config:
    """Validate a raw config mapping and build a Config.

    Unknown keys, rule ids and categories raise KeyError; malformed values
    raise ValueError.
    """
    for key in raw:
        if key not in CONFIG_SCHEMA:
            raise KeyError(f"Unknown config key: {key}")
    values = {**default_config(), **raw}
    for key, value in values.items():
        _check_type(key, value)

    framework = values["framework"]
    return Config(
        rules=_parse_rules(values["rules"]),
        threshold=values["threshold"],
        ignore=tuple(values["ignore"]),
        weights=_parse_weights(values["weights"]),
        penalties=dataclass_from_overrides(PenaltyPolicy, values["penalties"]),
        smells=dataclass_from_overrides(SmellThresholds, values["smells"]),
        per_test=values["per_test"],
        skip_source_analysis=values["skip_source_analysis"],
        framework=Framework(framework.lower()) if framework else None,
    )


def load_config(path: Path | str) -> Config:
    """Load a JSON config file. Missing keys take their defaults."""
    p = Path(path)
    try:
        raw = json.loads(p.read_text())
    except json.JSONDecodeError as exc:
        raise ValueError(f"{p}: invalid JSON ({exc})") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"{p}: config must be a JSON object")
    return config_from_dict(raw)


__all__ = [
    "CONFIG_SCHEMA",
    "Config",
    "ConfigKey",
    "DEFAULT_CONFIG",
    "config_from_dict",
    "default_config",
    "load_config",
]
