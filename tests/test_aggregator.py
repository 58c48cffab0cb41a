from __future__ import annotations

import pytest

from apitester.aggregator import aggregate, summarize
from apitester.suite_types import StepResult, TestResult, TestState, ValidationResult


def _test(test_id, *valid, skipped=False):
    steps = [StepResult(name="s", validations=[ValidationResult(name=str(i), valid=v) for i, v in enumerate(valid)])]
    return TestResult(id=test_id, skipped=skipped, steps=[] if skipped else steps)


def test_summary_from_tree():
    results = [_test("a", True, True), _test("b", True, False, False), _test("c", skipped=True)]
    s = summarize(results)
    assert (s.tests_executed, s.tests_failed, s.tests_skipped) == (2, 1, 1)
    assert (s.validations_performed, s.validations_failed) == (5, 2)
    assert s.tests_failed == sum(1 for t in results if t.state is TestState.FAILED)


def test_counters_follow_tree_changes():
    result = aggregate([_test("a", True)])
    assert result.passed
    result.test_results[0].steps[0].validations.append(ValidationResult(name="late", valid=False))
    assert result.summary.validations_failed == 1
    assert not result.passed


def test_to_dict_shape():
    result = aggregate([_test("a", True), _test("b", skipped=True)], time_started="t0", time_ended="t1")
    out = result.to_dict()
    assert out["timeStarted"] == "t0"
    assert out["timeEnded"] == "t1"
    assert (out["testsExecuted"], out["testsFailed"], out["testsSkipped"]) == (1, 0, 1)
    assert [t["state"] for t in out["testResults"]] == ["PASSED", "SKIPPED"]
    assert out["testResults"][0]["steps"][0]["validations"][0]["valid"] is True


def test_empty_run():
    s = aggregate([]).summary
    assert s.tests_executed == s.tests_failed == s.validations_performed == 0


def test_unfilled_slot_rejected():
    with pytest.raises(ValueError):
        aggregate([_test("a", True), None])
