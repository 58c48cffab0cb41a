# apitester/validation.py
"""
Validation engine.

validate() evaluates every declared check against a response and returns
one ValidationResult per check, in declaration order. A check never raises:
missing facets, bad paths, bad patterns and unresolved expectations all
turn into an invalid result for that check alone.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import jsonschema

from apitester.suite_types import StepResponse, Validation, ValidationResult
from apitester.variables import MISSING, VariableStore, as_text, extract_path, is_missing

logger = logging.getLogger(__name__)


# ==================== Facet extraction ====================

def extract_facet(response: StepResponse, facet: str, path: str = "") -> Any:
    """
    Pull one facet out of a response.

    Returns MISSING (see is_missing) when the facet or path does not exist.
    """
    if facet == "status":
        return response.status_code

    if facet == "header":
        if not path:
            return dict(response.headers)
        value = response.header(path)
        return MISSING if value is None else value

    if facet == "body":
        try:
            data = response.json()
        except ValueError:
            # Non-JSON bodies only expose their text as a whole
            return MISSING if path else response.text
        return extract_path(data, path) if path else data

    if facet == "elapsed_ms":
        return MISSING if response.elapsed_ms is None else response.elapsed_ms

    if facet == "size":
        return len(response.content or response.text.encode("utf-8"))

    return MISSING


def extract_selector(response: StepResponse, selector: str) -> Any:
    """Resolve a 'facet.path' selector, also accepting '$status' style names."""
    selector = selector.lstrip("$")
    facet, _, path = selector.partition(".")
    return extract_facet(response, facet.lower(), path)


# ==================== Diff helper ====================

def compute_diff(expected: Any, actual: Any, path: str = "") -> List[str]:
    """Compute detailed diff between expected and actual values"""
    diffs = []

    if type(expected) != type(actual):
        diffs.append(f"{path or '<root>'}: type mismatch (expected {type(expected).__name__}, got {type(actual).__name__})")
        return diffs

    if isinstance(expected, dict):
        for key in list(expected) + [k for k in actual if k not in expected]:
            new_path = f"{path}.{key}" if path else key
            if key not in expected:
                diffs.append(f"{new_path}: unexpected key in actual")
            elif key not in actual:
                diffs.append(f"{new_path}: missing key in actual")
            else:
                diffs.extend(compute_diff(expected[key], actual[key], new_path))

    elif isinstance(expected, list):
        if len(expected) != len(actual):
            diffs.append(f"{path or '<root>'}: length mismatch (expected {len(expected)}, got {len(actual)})")
        else:
            for i, (exp_item, act_item) in enumerate(zip(expected, actual)):
                diffs.extend(compute_diff(exp_item, act_item, f"{path}[{i}]"))

    elif expected != actual:
        diffs.append(f"{path or '<root>'}: {expected!r} != {actual!r}")

    return diffs


# ==================== Checks ====================

# Each check returns (valid, message)
CheckFn = Callable[[Any, Any], Tuple[bool, str]]


def _check_equals(actual: Any, expected: Any) -> Tuple[bool, str]:
    if as_text(actual) == as_text(expected):
        return True, "OK"
    if isinstance(expected, (dict, list)) and isinstance(actual, (dict, list)):
        return False, "; ".join(compute_diff(expected, actual))
    return False, f"{as_text(actual)!r} != {as_text(expected)!r}"


def _check_not_equals(actual: Any, expected: Any) -> Tuple[bool, str]:
    if as_text(actual) != as_text(expected):
        return True, "OK"
    return False, f"value equals {as_text(expected)!r}"


def _check_contains(actual: Any, expected: Any) -> Tuple[bool, str]:
    if isinstance(actual, list):
        ok = as_text(expected) in [as_text(item) for item in actual]
    elif isinstance(actual, dict):
        ok = as_text(expected) in actual
    else:
        ok = as_text(expected) in as_text(actual)
    return (True, "OK") if ok else (False, f"{as_text(expected)!r} not found in value")


def _check_matches(actual: Any, expected: Any) -> Tuple[bool, str]:
    try:
        ok = re.search(str(expected), as_text(actual)) is not None
    except re.error as e:
        return False, f"invalid pattern {expected!r}: {e}"
    return (True, "OK") if ok else (False, f"{as_text(actual)!r} does not match {expected!r}")


def _numeric(op: Callable[[float, float], bool], symbol: str) -> CheckFn:
    def check(actual: Any, expected: Any) -> Tuple[bool, str]:
        try:
            a, e = float(actual), float(expected)
        except (TypeError, ValueError):
            return False, f"cannot compare {actual!r} {symbol} {expected!r} numerically"
        return (True, "OK") if op(a, e) else (False, f"{actual} {symbol} {expected} is false")
    return check


def _check_schema(actual: Any, expected: Any) -> Tuple[bool, str]:
    if not isinstance(expected, dict):
        return False, "schema check needs a JSON schema object as 'expected'"
    try:
        jsonschema.validate(instance=actual, schema=expected)
    except jsonschema.ValidationError as e:
        return False, f"schema validation failed: {e.message}"
    except jsonschema.SchemaError as e:
        return False, f"invalid schema: {e.message}"
    except Exception as e:
        # Unresolvable $ref and similar
        return False, f"schema validation error: {type(e).__name__}: {e}"
    return True, "OK"


CHECKS: Dict[str, CheckFn] = {
    "equals": _check_equals,
    "not_equals": _check_not_equals,
    "contains": _check_contains,
    "matches": _check_matches,
    "lt": _numeric(lambda a, e: a < e, "<"),
    "lte": _numeric(lambda a, e: a <= e, "<="),
    "gt": _numeric(lambda a, e: a > e, ">"),
    "gte": _numeric(lambda a, e: a >= e, ">="),
    "schema": _check_schema,
}


# ==================== Engine ====================

def _public(value: Any) -> Any:
    return None if is_missing(value) else value


def _where(facet: str, path: str) -> str:
    return f"{facet}.{path}" if path else facet


def validate_one(
    check: Validation,
    response: Optional[StepResponse],
    variables: Optional[VariableStore] = None,
) -> ValidationResult:
    expected = check.expected
    path = check.path
    unresolved: List[str] = []
    if variables is not None:
        r = variables.resolve(expected)
        expected, unresolved = r.value, list(r.unresolved)
        p = variables.resolve(path)
        path = as_text(p.value)
        unresolved.extend(n for n in p.unresolved if n not in unresolved)

    result = ValidationResult(name=check.label, valid=False, expected=expected)

    if response is None:
        result.message = "no response available"
        return result

    actual = extract_facet(response, check.facet, path)
    result.actual = _public(actual)

    if unresolved:
        result.message = "unresolved variable(s): " + ", ".join(unresolved)
        return result

    if check.check == "exists":
        result.valid = not is_missing(actual)
        result.message = "OK" if result.valid else f"{_where(check.facet, path)} not found"
        return result

    if check.check == "not_exists":
        result.valid = is_missing(actual)
        result.message = "OK" if result.valid else f"{_where(check.facet, path)} is present"
        return result

    if is_missing(actual):
        result.message = f"{_where(check.facet, path)} not found"
        return result

    result.valid, result.message = CHECKS[check.check](actual, expected)
    return result


def validate(
    checks: Sequence[Validation],
    response: Optional[StepResponse],
    variables: Optional[VariableStore] = None,
) -> List[ValidationResult]:
    """
    Evaluate all checks; never stops at the first failure.

    Args:
        checks: Declared validations in order
        response: Step response, or None when the request never completed
        variables: Store used to resolve placeholders in expected values
    """
    results = [validate_one(c, response, variables) for c in checks]
    failed = sum(1 for r in results if not r.valid)
    if failed:
        logger.debug(f"{failed}/{len(results)} validation(s) failed")
    return results
