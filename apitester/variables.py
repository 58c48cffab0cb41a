# apitester/variables.py
"""
Variable store and placeholder resolution.

Placeholders look like {{ name }}. Resolution walks strings, mappings and
sequences recursively; inserted values are never re-scanned, so resolving
an already resolved template returns it unchanged.
"""

from __future__ import annotations

import json
import logging
import re
from collections import ChainMap
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.\-]+)\s*\}\}")
UNRESOLVED_MARKER = "<unresolved:{}>"

MISSING = object()


def extract_path(obj: Any, dotted: str, default: Any = MISSING) -> Any:
    """Walk a dotted path ('a.0.b') through dicts and lists.

    Returns `default` when any segment is missing; without a default the
    module sentinel is returned so callers can tell null from absent.
    """
    parts = [p for p in dotted.split(".") if p]
    cur = obj

    for p in parts:
        if isinstance(cur, list):
            try:
                idx = int(p)
            except ValueError:
                return default
            if idx < -len(cur) or idx >= len(cur):
                return default
            cur = cur[idx]
        elif isinstance(cur, Mapping):
            if p not in cur:
                return default
            cur = cur[p]
        else:
            return default

    return cur


def is_missing(value: Any) -> bool:
    return value is MISSING


def as_text(value: Any) -> str:
    """Canonical text form used for interpolation and equality."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return str(value)


@dataclass
class Resolution:
    """Resolved value plus the placeholder names that could not be bound."""
    value: Any
    unresolved: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unresolved


def resolve(template: Any, scope: Mapping[str, Any]) -> Resolution:
    """Substitute every placeholder in `template` from `scope`.

    A string that is exactly one placeholder resolves to the bound value
    itself, keeping its type. Unbound names become a visible marker.
    """
    unresolved: List[str] = []
    value = _resolve(template, scope, unresolved)
    # Keep first-seen order, drop repeats
    return Resolution(value=value, unresolved=list(dict.fromkeys(unresolved)))


def _lookup(name: str, scope: Mapping[str, Any]) -> Any:
    if name in scope:
        return scope[name]
    head, _, rest = name.partition(".")
    if rest and head in scope:
        return extract_path(scope[head], rest)
    return MISSING


def _resolve(value: Any, scope: Mapping[str, Any], unresolved: List[str]) -> Any:
    if isinstance(value, str):
        whole = PLACEHOLDER_RE.fullmatch(value.strip())
        if whole:
            bound = _lookup(whole.group(1), scope)
            if is_missing(bound):
                unresolved.append(whole.group(1))
                return UNRESOLVED_MARKER.format(whole.group(1))
            return bound

        def replace(match: re.Match) -> str:
            bound = _lookup(match.group(1), scope)
            if is_missing(bound):
                unresolved.append(match.group(1))
                return UNRESOLVED_MARKER.format(match.group(1))
            return as_text(bound)

        return PLACEHOLDER_RE.sub(replace, value)

    if isinstance(value, Mapping):
        return {k: _resolve(v, scope, unresolved) for k, v in value.items()}

    if isinstance(value, (list, tuple)):
        return [_resolve(v, scope, unresolved) for v in value]

    return value


class VariableStore:
    """
    Scoped variables for one test.

    Lookup order, highest first: test bindings, variables promoted to suite
    scope by earlier tests, suite variables, config document. Suite and
    config layers are read-only views.
    """

    def __init__(
        self,
        suite_variables: Optional[Mapping[str, Any]] = None,
        config: Optional[Mapping[str, Any]] = None,
        promoted: Optional[Dict[str, Any]] = None,
    ):
        self._test: Dict[str, Any] = {}
        # Shared across tests of a run; snapshot keeps this store isolated
        self._promoted_shared = promoted if promoted is not None else {}
        self._promoted: Dict[str, Any] = dict(self._promoted_shared)
        self._chain = ChainMap(
            self._test,
            self._promoted,
            MappingProxyType(dict(suite_variables or {})),
            MappingProxyType(dict(config or {})),
        )

    def bind(self, name: str, value: Any, scope: str = "test") -> None:
        if scope == "suite":
            # Stale test binding would shadow the newer value
            self._test.pop(name, None)
            self._promoted[name] = value
            self._promoted_shared[name] = value
            logger.debug(f"Promoted variable '{name}' to suite scope")
            return
        if name in self._test:
            logger.debug(f"Rebinding variable '{name}'")
        self._test[name] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for k, v in values.items():
            self.bind(k, v)

    def get(self, name: str, default: Any = None) -> Any:
        value = _lookup(name, self._chain)
        return default if is_missing(value) else value

    def __contains__(self, name: str) -> bool:
        return not is_missing(_lookup(name, self._chain))

    def view(self) -> Mapping[str, Any]:
        """Read-only view across all scopes."""
        return MappingProxyType(dict(self._chain))

    def resolve(self, template: Any) -> Resolution:
        return resolve(template, self._chain)

