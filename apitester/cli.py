# apitester/cli.py
"""
Command-line entry point.

Usage:
    # Run one suite
    apitester --tests suites/users.json

    # Merge extra suites, pick two tests, write a JSON report
    apitester -t suites/base.json -e "suites/extra/*.json" --tags login,profile -r file -o out.json

    # Custom actions and a config document of default variables
    apitester -t suites/signed.json -c config/staging.json -a actions/SignerAction.py

Exit status is the number of failed tests, capped at 255; configuration errors
and bad arguments exit with 1.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from apitester.actions import ActionRegistry
from apitester.combiner import build_suite
from apitester.config import Settings
from apitester.loader import load_config, load_suite_documents
from apitester.reporter import REPORTERS
from apitester.runner import TestRunner
from apitester.suite_types import ConfigurationError, Suite
from apitester.tag_filter import filter_by_tags, parse_tags

logger = logging.getLogger("apitester")

# Exit statuses are taken modulo 256 by the OS
MAX_EXIT_STATUS = 255


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )


def _build_cli() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="apitester",
        description="Declarative HTTP API test runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--tests", "-t", required=True, help="Suite document path or glob")
    p.add_argument("--config", "-c", help="Config document (lowest-priority variables)")
    p.add_argument("--reporter", "-r", choices=sorted(REPORTERS), default="console", help="Report format")
    p.add_argument("--output", "-o", help="Output path for the file reporter")
    p.add_argument("--tags", help="Comma-separated test ids/tags to run")
    p.add_argument("--extra-tests", "-e", action="append", default=[], help="Additional suite documents (repeatable)")
    p.add_argument("--actions", "-a", action="append", default=[], help="Custom action file (repeatable)")
    p.add_argument("--concurrency", type=int, help="Tests run at once (default 1)")
    p.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    p.add_argument("--base-url", help="Base URL for relative request URLs")
    p.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    return p


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides = {}
    if args.concurrency is not None:
        overrides["max_concurrency"] = args.concurrency
    if args.timeout is not None:
        overrides["timeout_s"] = args.timeout
    if args.base_url is not None:
        overrides["base_url"] = args.base_url
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


def prepare(args: argparse.Namespace) -> tuple:
    """Everything that can fail before a single test runs."""
    settings = _settings_from_args(args)

    registry = ActionRegistry()
    registry.load_all(args.actions)

    docs = load_suite_documents([args.tests, *args.extra_tests])
    config = load_config(args.config)
    suite = build_suite(*docs, config=config)

    tags = parse_tags(args.tags)
    if tags:
        suite = Suite(
            tests=tuple(filter_by_tags(suite.tests, tags)),
            variables=suite.variables,
            config=suite.config,
        )
    return settings, registry, suite


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    try:
        args = _build_cli().parse_args(argv)
    except SystemExit as e:
        # argparse already printed usage or help
        return 0 if e.code in (0, None) else 1

    setup_logging(os.environ.get("APITESTER_LOG_LEVEL", "INFO"), verbose=args.verbose)

    try:
        settings, registry, suite = prepare(args)
    except ConfigurationError as e:
        print(f"apitester: {e}", file=sys.stderr)
        return 1

    result = TestRunner(settings=settings, registry=registry).run(suite)
    REPORTERS[args.reporter](result, output=args.output)
    return min(result.summary.tests_failed, MAX_EXIT_STATUS)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nCancelled by user", file=sys.stderr)
        sys.exit(130)
