# apitester/combiner.py
"""
Merge independently loaded suite documents into one logical suite.

- `tests` sequences are concatenated in first-seen order; a repeated test
  id is an error, never an overwrite.
- `variables` and `config` objects are deep-merged: later scalars win,
  nested mappings merge key by key.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional

from apitester.suite_types import CombineError, Suite

logger = logging.getLogger(__name__)

MERGED_KEYS = ("variables", "config")


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a new mapping with `override` merged over `base`."""
    merged: Dict[str, Any] = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _check_document(doc: Any, index: int) -> None:
    label = f"document #{index + 1}"
    if isinstance(doc, Mapping):
        label = str(doc.get("_source") or label)
    if not isinstance(doc, Mapping):
        raise CombineError(f"{label} is not an object")
    if "tests" not in doc:
        raise CombineError(f"{label} is missing required field 'tests'")
    if not isinstance(doc["tests"], list):
        raise CombineError(f"{label}: 'tests' must be a list")
    for key in MERGED_KEYS:
        if doc.get(key) is not None and not isinstance(doc[key], Mapping):
            raise CombineError(f"{label}: '{key}' must be an object")
    for t in doc["tests"]:
        if not isinstance(t, Mapping) or not t.get("id"):
            raise CombineError(f"{label}: every test needs an 'id'")


def combine(*docs: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Combine suite documents.

    Raises:
        CombineError: malformed document or duplicate test id
    """
    if not docs:
        raise CombineError("no suite documents to combine")

    tests: List[Dict[str, Any]] = []
    seen: Dict[str, str] = {}
    combined: Dict[str, Any] = {key: {} for key in MERGED_KEYS}

    for index, doc in enumerate(docs):
        _check_document(doc, index)
        source = str(doc.get("_source") or f"document #{index + 1}")

        for t in doc["tests"]:
            test_id = str(t["id"])
            if test_id in seen:
                raise CombineError(f"Duplicate test id {test_id!r} in {source} (first seen in {seen[test_id]})")
            seen[test_id] = source
            tests.append(copy.deepcopy(dict(t)))

        for key in MERGED_KEYS:
            if doc.get(key):
                combined[key] = deep_merge(combined[key], doc[key])

    combined["tests"] = tests
    logger.debug(f"Combined {len(docs)} document(s) into {len(tests)} test(s)")
    return combined


def build_suite(*docs: Mapping[str, Any], config: Optional[Mapping[str, Any]] = None) -> Suite:
    """Combine documents and parse the result into an immutable Suite."""
    return Suite.from_document(combine(*docs), config=config)
