"""
Pass/fail judgement for one submission.

A submission passes when it compiled, finished inside the time budget, printed the
expected output (compared after line-ending normalization and trailing-whitespace
trimming) and satisfies every source rule of the problem. The exit status of the
program is not part of the judgement.
"""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Type

from .models import BuildResult, ExecutionResult, Problem, SourceRule, Verdict


class SourceRuleCheck:
    """A static check over the raw submitted source."""

    kind = ""

    def __init__(self, pattern: str):
        self.pattern = pattern

    def holds(self, source_code: str) -> bool:
        # unknown rule kinds never fail a submission
        return True


class MustContain(SourceRuleCheck):
    kind = "MustContain"

    def holds(self, source_code: str) -> bool:
        return self.pattern in source_code


class MustNotContain(SourceRuleCheck):
    kind = "MustNotContain"

    def holds(self, source_code: str) -> bool:
        return self.pattern not in source_code


RULE_CHECKS: Dict[str, Type[SourceRuleCheck]] = {
    MustContain.kind: MustContain,
    MustNotContain.kind: MustNotContain,
}


def make_check(rule: SourceRule) -> SourceRuleCheck:
    return RULE_CHECKS.get(rule.kind, SourceRuleCheck)(rule.pattern)


def normalize_output(text: str) -> str:
    return text.replace("\r\n", "\n").rstrip()


def output_matches(stdout: str, expected_stdout: str) -> bool:
    return normalize_output(stdout) == normalize_output(expected_stdout)


def rules_hold(rules: Iterable[SourceRule], source_code: str) -> bool:
    # all() stops at the first failing rule
    return all(make_check(rule).holds(source_code) for rule in rules)


def evaluate(
    problem: Problem,
    source_code: str,
    build: BuildResult,
    execution: Optional[ExecutionResult],
) -> Verdict:
    if not build.succeeded or execution is None or execution.timed_out:
        return Verdict(passed=False)
    if not output_matches(execution.stdout, problem.expected_stdout):
        return Verdict(passed=False)
    return Verdict(passed=rules_hold(problem.source_rules, source_code))
