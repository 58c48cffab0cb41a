# apitester/suite_types.py
"""
Shared types, enums, and dataclasses for the test engine.

Definitions (Suite, TestCase, Step, ...) are built once from the combined
suite document and never mutated during a run. Results form a tree whose
summary counters are always derived by traversal.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence


class TestState(str, Enum):
    """Lifecycle of a single test."""
    __test__ = False

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class ActionPhase(str, Enum):
    """When an action runs relative to the request."""
    BEFORE = "before"
    AFTER = "after"


# ==================== Definitions ====================

@dataclass(frozen=True)
class RequestTemplate:
    """Unresolved request description; any field may hold placeholders."""
    method: str = "GET"
    url: str = ""
    headers: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    json_body: Any = None
    data: Any = None
    timeout: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "RequestTemplate":
        url = raw.get("url") or raw.get("path") or ""
        if not url:
            raise ConfigurationError("request is missing 'url'")
        json_body = raw.get("json", raw.get("body"))
        timeout = raw.get("timeout")
        return cls(
            method=str(raw.get("method") or "GET").upper(),
            url=url,
            headers=dict(raw.get("headers") or {}),
            params=dict(raw.get("params") or {}),
            json_body=json_body,
            data=raw.get("data"),
            timeout=float(timeout) if timeout is not None else None,
        )

    def as_template(self) -> Dict[str, Any]:
        """Template form handed to the resolver."""
        return {
            "method": self.method,
            "url": self.url,
            "headers": self.headers,
            "params": self.params,
            "json": self.json_body,
            "data": self.data,
        }


@dataclass(frozen=True)
class ActionInvocation:
    """A named action plus its configuration and output binding."""
    name: str
    config: Dict[str, Any] = field(default_factory=dict)
    output: Optional[str] = None
    phase: ActionPhase = ActionPhase.BEFORE
    scope: str = "test"

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ActionInvocation":
        name = raw.get("name") or raw.get("type")
        if not name:
            raise ConfigurationError("action invocation is missing 'name'")
        when = str(raw.get("when") or ActionPhase.BEFORE.value).lower()
        try:
            phase = ActionPhase(when)
        except ValueError:
            raise ConfigurationError(f"action '{name}': 'when' must be 'before' or 'after', got {when!r}")
        scope = str(raw.get("scope") or "test").lower()
        if scope not in ("test", "suite"):
            raise ConfigurationError(f"action '{name}': scope must be 'test' or 'suite', got {scope!r}")
        return cls(
            name=str(name),
            config=dict(raw.get("config") or {}),
            output=raw.get("output"),
            phase=phase,
            scope=scope,
        )


# Shorthand: "status == 200", "body.user.id exists", "header.content-type ~= json"
_SHORTHAND_UNARY_RE = re.compile(r"^\s*(?:expect\s+)?(\S+)\s+(not\s+exists|exists)\s*$", re.I)
_SHORTHAND_BINARY_RE = re.compile(r"^\s*(?:expect\s+)?(\S+?)\s*(==|!=|~=|<=|>=|<|>|\s+contains\s+)\s*(.*?)\s*$", re.I)

_SHORTHAND_OPS = {
    "==": "equals",
    "!=": "not_equals",
    "~=": "matches",
    "<": "lt",
    "<=": "lte",
    ">": "gt",
    ">=": "gte",
    "contains": "contains",
}

FACETS = ("status", "header", "body", "elapsed_ms", "size")
CHECKS = (
    "equals", "not_equals", "exists", "not_exists", "contains",
    "matches", "lt", "lte", "gt", "gte", "schema",
)


def split_facet(selector: str) -> tuple:
    """Split 'body.a.b' into ('body', 'a.b'); bare facets have an empty path."""
    head, _, rest = selector.partition(".")
    return head.lower(), rest


def _parse_expected(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return text


@dataclass(frozen=True)
class Validation:
    """A single declared check against one facet of the response."""
    facet: str
    check: str
    path: str = ""
    expected: Any = None
    name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.name:
            return self.name
        target = f"{self.facet}.{self.path}" if self.path else self.facet
        return f"{target} {self.check}"

    @classmethod
    def parse(cls, raw: Any) -> "Validation":
        if isinstance(raw, str):
            return cls._parse_shorthand(raw)
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"validation must be an object or string, got {type(raw).__name__}")

        facet = str(raw.get("facet") or "").lower()
        path = str(raw.get("path") or "")
        if "." in facet and not path:
            facet, path = split_facet(facet)
        check = str(raw.get("check") or "equals").lower()
        if facet not in FACETS:
            raise ConfigurationError(f"unknown validation facet {facet!r}")
        if check not in CHECKS:
            raise ConfigurationError(f"unknown validation check {check!r}")
        return cls(facet=facet, check=check, path=path, expected=raw.get("expected"), name=raw.get("name"))

    @classmethod
    def _parse_shorthand(cls, text: str) -> "Validation":
        m = _SHORTHAND_UNARY_RE.match(text)
        if m:
            facet, path = split_facet(m.group(1))
            check = "not_exists" if m.group(2).lower().startswith("not") else "exists"
        else:
            m = _SHORTHAND_BINARY_RE.match(text)
            if not m:
                raise ConfigurationError(f"cannot parse validation {text!r}")
            facet, path = split_facet(m.group(1))
            check = _SHORTHAND_OPS[m.group(2).strip().lower()]
            expected = _parse_expected(m.group(3))
        if facet not in FACETS:
            raise ConfigurationError(f"unknown validation facet {facet!r} in {text!r}")
        if check in ("exists", "not_exists"):
            return cls(facet=facet, check=check, path=path, name=text.strip())
        return cls(facet=facet, check=check, path=path, expected=expected, name=text.strip())


@dataclass(frozen=True)
class Step:
    """One request/response/validate unit."""
    request: RequestTemplate
    name: Optional[str] = None
    actions: Sequence[ActionInvocation] = ()
    validations: Sequence[Validation] = ()
    save: Dict[str, str] = field(default_factory=dict)

    @property
    def pre_actions(self) -> List[ActionInvocation]:
        return [a for a in self.actions if a.phase is ActionPhase.BEFORE]

    @property
    def post_actions(self) -> List[ActionInvocation]:
        return [a for a in self.actions if a.phase is ActionPhase.AFTER]

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Step":
        if not isinstance(raw.get("request"), Mapping):
            raise ConfigurationError(f"step {raw.get('name') or ''!r} is missing a 'request' object")
        return cls(
            request=RequestTemplate.from_dict(raw["request"]),
            name=raw.get("name"),
            actions=tuple(ActionInvocation.from_dict(a) for a in raw.get("actions") or []),
            validations=tuple(Validation.parse(v) for v in raw.get("validations") or []),
            save=dict(raw.get("save") or {}),
        )


@dataclass(frozen=True)
class TestCase:
    """A named, ordered sequence of steps."""
    __test__ = False

    id: str
    steps: Sequence[Step] = ()
    tags: frozenset = frozenset()
    skip: bool = False
    name: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "TestCase":
        test_id = raw.get("id")
        if not test_id:
            raise ConfigurationError("test is missing 'id'")
        try:
            steps = tuple(Step.from_dict(s) for s in raw.get("steps") or [])
        except ConfigurationError as e:
            raise ConfigurationError(f"test {test_id!r}: {e}") from e
        return cls(
            id=str(test_id),
            steps=steps,
            tags=frozenset(str(t) for t in raw.get("tags") or []),
            skip=bool(raw.get("skip", False)),
            name=raw.get("name"),
            variables=dict(raw.get("variables") or {}),
        )


@dataclass(frozen=True)
class Suite:
    """Combined tests plus shared, immutable defaults."""
    tests: Sequence[TestCase] = ()
    variables: Dict[str, Any] = field(default_factory=dict)
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any], config: Optional[Mapping[str, Any]] = None) -> "Suite":
        merged_config = dict(doc.get("config") or {})
        if config:
            merged_config.update(config)
        return cls(
            tests=tuple(TestCase.from_dict(t) for t in doc.get("tests") or []),
            variables=dict(doc.get("variables") or {}),
            config=merged_config,
        )


# ==================== Responses ====================

_NO_JSON = object()


@dataclass
class StepResponse:
    """What the transport hands back; headers are keyed lower-case."""
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ""
    content: bytes = b""
    elapsed_ms: Optional[int] = None
    _json: Any = field(default=_NO_JSON, repr=False, compare=False)

    @property
    def is_json(self) -> bool:
        try:
            self.json()
        except ValueError:
            return False
        return True

    def json(self) -> Any:
        """Parsed body; raises ValueError when the body is not JSON."""
        if self._json is _NO_JSON:
            self._json = json.loads(self.text)
        return self._json

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())


# ==================== Results ====================

@dataclass
class ValidationResult:
    """Outcome of one check; synthetic failures use kinds action, transport, unresolved_variable and error."""
    name: str
    valid: bool
    kind: str = "validation"
    expected: Any = None
    actual: Any = None
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind,
            "valid": self.valid,
            "expected": self.expected,
            "actual": self.actual,
            "message": self.message,
        }


@dataclass
class StepResult:
    name: str
    method: str = ""
    url: str = ""
    status_code: Optional[int] = None
    elapsed_ms: Optional[int] = None
    validations: List[ValidationResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(v.valid for v in self.validations)

    @property
    def failed_validations(self) -> List[ValidationResult]:
        return [v for v in self.validations if not v.valid]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "method": self.method,
            "url": self.url,
            "statusCode": self.status_code,
            "elapsedMs": self.elapsed_ms,
            "passed": self.passed,
            "validations": [v.to_dict() for v in self.validations],
        }


@dataclass
class TestResult:
    """Per-test slot in the result tree; pass/fail is derived from steps."""
    __test__ = False

    id: str
    name: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    skipped: bool = False
    steps: List[StepResult] = field(default_factory=list)
    started_at: Optional[str] = None
    ended_at: Optional[str] = None

    @property
    def passed(self) -> bool:
        return not self.skipped and all(s.passed for s in self.steps)

    @property
    def state(self) -> TestState:
        if self.skipped:
            return TestState.SKIPPED
        return TestState.PASSED if self.passed else TestState.FAILED

    @property
    def validations(self) -> List[ValidationResult]:
        return [v for s in self.steps for v in s.validations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tags": list(self.tags),
            "state": self.state.value,
            "passed": self.passed,
            "skipped": self.skipped,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "steps": [s.to_dict() for s in self.steps],
        }



# ==================== Errors ====================

class EngineError(Exception):
    """Base exception for test engine errors."""
    pass


class ConfigurationError(EngineError):
    """Bad CLI input, missing files or malformed documents. Fatal before any test runs."""
    pass


class CombineError(ConfigurationError):
    """Suite documents could not be merged."""
    pass


class NoMatchError(ConfigurationError):
    """A tag filter selected no tests."""
    pass


class ConflictError(ConfigurationError):
    """An action name is already bound to a different implementation."""
    pass


class UnknownActionError(EngineError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown action '{name}'")


class ActionError(EngineError):
    """Raised when an action fails to compute its value."""
    def __init__(self, action: str, cause: BaseException):
        self.action = action
        self.cause = cause
        super().__init__(f"Action '{action}' failed: {cause}")


class UnsupportedMacTypeError(EngineError, ValueError):
    def __init__(self, mac_type: Any):
        self.mac_type = mac_type
        super().__init__(f"Unsupported macType {mac_type!r} (expected 'hmac' or 'cmac')")


class UnresolvedVariableError(EngineError):
    def __init__(self, names: Sequence[str]):
        self.names = list(names)
        super().__init__("Unresolved variable(s): " + ", ".join(self.names))


class TransportError(EngineError):
    """Network or timeout failure at the HTTP boundary."""
    def __init__(self, message: str, cause: Optional[BaseException] = None, timed_out: bool = False):
        self.cause = cause
        self.timed_out = timed_out
        super().__init__(message)
