"""Declarative HTTP API test engine."""

from apitester.actions import ActionRegistry
from apitester.aggregator import SuiteResult, aggregate, summarize
from apitester.combiner import build_suite, combine
from apitester.config import Settings
from apitester.runner import TestRunner, run_suite
from apitester.tag_filter import filter_by_tags

__version__ = "1.0.0"

__all__ = [
    "ActionRegistry",
    "Settings",
    "SuiteResult",
    "TestRunner",
    "aggregate",
    "build_suite",
    "combine",
    "filter_by_tags",
    "run_suite",
    "summarize",
]
