# apitester/tag_filter.py
"""
Narrow a combined test list to the requested identifiers/tags.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from apitester.suite_types import NoMatchError, TestCase

logger = logging.getLogger(__name__)


def parse_tags(raw: Optional[str]) -> List[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def matches(test: TestCase, wanted: Iterable[str]) -> bool:
    wanted = set(wanted)
    return test.id in wanted or bool(test.tags & wanted)


def filter_by_tags(tests: Sequence[TestCase], tags: Optional[Sequence[str]]) -> List[TestCase]:
    """
    Keep tests whose id (or one of whose declared tags) is requested.

    No tags means no filtering. Original order is preserved.

    Raises:
        NoMatchError: tags were given but nothing matched
    """
    if not tags:
        return list(tests)

    selected = [t for t in tests if matches(t, tags)]
    if not selected:
        raise NoMatchError(f"No tests match tags: {', '.join(tags)}")

    logger.info(f"Tag filter selected {len(selected)}/{len(tests)} test(s)")
    return selected
