# apitester/reporter.py
"""
Reporters for a finished run: console (rich), JSON to stdout, JSON file.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from apitester.aggregator import SuiteResult

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = Path("reports") / "run_outcome.json"


def _atomic_json_dump(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
    tmp.replace(path)


def report_console(result: SuiteResult, console: Optional[Console] = None, **_: Any) -> None:
    console = console or Console()
    table = Table(title="API test results")
    table.add_column("Test")
    table.add_column("Status")
    table.add_column("Steps", justify="right")
    table.add_column("Failed checks", justify="right")

    for test in result.test_results:
        failed = [v for v in test.validations if not v.valid]
        status = {
            "PASSED": "[green]PASS[/green]",
            "FAILED": "[red]FAIL[/red]",
            "SKIPPED": "[yellow]SKIP[/yellow]",
        }[test.state.value]
        table.add_row(escape(test.id), status, str(len(test.steps)), str(len(failed)))

    console.print(table)

    for test in result.test_results:
        for step in test.steps:
            for v in step.failed_validations:
                console.print(f"  [red]✗[/red] {escape(f'{test.id} › {step.name} › {v.name}: {v.message}')}")

    s = result.summary
    console.print(
        f"\nTests: {s.tests_executed} executed, {s.tests_failed} failed, {s.tests_skipped} skipped | "
        f"Validations: {s.validations_performed} performed, {s.validations_failed} failed"
    )


def report_json(result: SuiteResult, stream: Optional[TextIO] = None, **_: Any) -> None:
    out = stream or sys.stdout
    json.dump(result.to_dict(), out, indent=2, default=str)
    out.write("\n")


def report_file(result: SuiteResult, output: Optional[str] = None, **_: Any) -> None:
    path = Path(output) if output else DEFAULT_OUTPUT
    _atomic_json_dump(path, result.to_dict())
    logger.info(f"Report written to {path}")


REPORTERS: Dict[str, Callable[..., None]] = {
    "console": report_console,
    "json": report_json,
    "file": report_file,
}
