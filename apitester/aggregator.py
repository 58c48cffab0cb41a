# apitester/aggregator.py
"""
Result aggregation.

Counters are never stored: every summary is recomputed from the result tree
in one traversal, so they cannot drift from what the tree holds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from apitester.suite_types import TestResult


@dataclass(frozen=True)
class RunSummary:
    tests_executed: int = 0
    tests_failed: int = 0
    tests_skipped: int = 0
    validations_performed: int = 0
    validations_failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "testsExecuted": self.tests_executed,
            "testsFailed": self.tests_failed,
            "testsSkipped": self.tests_skipped,
            "validationsPerformed": self.validations_performed,
            "validationsFailed": self.validations_failed,
        }


def summarize(test_results: Sequence[TestResult]) -> RunSummary:
    """Single full traversal of the tree. Skipped tests contribute only to tests_skipped."""
    executed = failed = skipped = performed = invalid = 0

    for test in test_results:
        if test.skipped:
            skipped += 1
            continue
        executed += 1
        test_invalid = 0
        for step in test.steps:
            for v in step.validations:
                performed += 1
                if not v.valid:
                    test_invalid += 1
        invalid += test_invalid
        if test_invalid:
            failed += 1

    return RunSummary(
        tests_executed=executed,
        tests_failed=failed,
        tests_skipped=skipped,
        validations_performed=performed,
        validations_failed=invalid,
    )


@dataclass
class SuiteResult:
    """Root of the result tree."""
    test_results: List[TestResult] = field(default_factory=list)
    time_started: Optional[str] = None
    time_ended: Optional[str] = None

    @property
    def summary(self) -> RunSummary:
        return summarize(self.test_results)

    @property
    def tests_failed(self) -> int:
        return self.summary.tests_failed

    @property
    def passed(self) -> bool:
        return self.tests_failed == 0

    def to_dict(self) -> Dict[str, Any]:
        """Run outcome as consumed by reporters."""
        return {
            "timeStarted": self.time_started,
            "timeEnded": self.time_ended,
            **self.summary.to_dict(),
            "testResults": [t.to_dict() for t in self.test_results],
        }


def aggregate(
    test_results: Sequence[Optional[TestResult]],
    time_started: Optional[str] = None,
    time_ended: Optional[str] = None,
) -> SuiteResult:
    """
    Assemble the suite result from per-test slots.

    Slots are indexed by original test order, so concurrent completion order
    never leaks into the tree.
    """
    missing = [i for i, r in enumerate(test_results) if r is None]
    if missing:
        raise ValueError(f"result slots never filled: {missing}")
    return SuiteResult(
        test_results=list(test_results),
        time_started=time_started,
        time_ended=time_ended,
    )


__all__ = ["RunSummary", "SuiteResult", "aggregate", "summarize"]
