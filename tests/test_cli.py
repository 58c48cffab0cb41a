"""CLI, loader and reporter tests."""

from __future__ import annotations

import functools
import io
import json

import httpx
import pytest
from rich.console import Console

from apitester import cli
from apitester.aggregator import aggregate
from apitester.loader import expand_paths, load_config, load_json, load_suite_documents
from apitester.reporter import report_console, report_json
from apitester.runner import TestRunner
from apitester.suite_types import ConfigurationError, StepResult, TestResult, ValidationResult


@pytest.fixture
def mock_http(monkeypatch):
    """Route every runner the CLI builds through a MockTransport returning 200 {"ok": true}."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "path": request.url.path})

    def factory(**kwargs):
        client = httpx.AsyncClient(base_url="http://test", transport=httpx.MockTransport(handler))
        return TestRunner(client=client, **kwargs)

    monkeypatch.setattr(cli, "TestRunner", factory)


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _suite_file(tmp_path, name="suite.json", tests=None):
    tests = tests if tests is not None else [
        {"id": "ok", "tags": ["smoke"], "steps": [{"request": {"url": "/ok"}, "validations": ["status == 200"]}]},
        {"id": "bad", "steps": [{"request": {"url": "/bad"}, "validations": ["status == 404"]}]},
    ]
    return _write(tmp_path / name, {"tests": tests})


class TestMain:

    def test_missing_suite_file_exits_1(self, tmp_path, capsys):
        assert cli.main(["-t", str(tmp_path / "nope.json")]) == 1
        assert "File not found" in capsys.readouterr().err

    def test_invalid_json_exits_1(self, tmp_path, capsys):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        assert cli.main(["-t", str(path)]) == 1
        assert "invalid JSON" in capsys.readouterr().err

    def test_unmatched_tags_exit_1(self, tmp_path):
        assert cli.main(["-t", str(_suite_file(tmp_path)), "--tags", "nothing"]) == 1

    def test_duplicate_ids_across_files_exit_1(self, tmp_path, capsys):
        a = _suite_file(tmp_path, "a.json")
        b = _suite_file(tmp_path, "b.json")
        assert cli.main(["-t", str(a), "-e", str(b)]) == 1
        assert "Duplicate test id" in capsys.readouterr().err

    def test_all_skipped_suite_exits_0(self, tmp_path):
        path = _suite_file(tmp_path, tests=[{"id": "s", "skip": True, "steps": [{"request": {"url": "/x"}}]}])
        assert cli.main(["-t", str(path), "-r", "json"]) == 0

    def test_exit_code_is_failed_test_count(self, tmp_path, mock_http):
        assert cli.main(["-t", str(_suite_file(tmp_path)), "-r", "json"]) == 1

    def test_tags_narrow_run(self, tmp_path, mock_http):
        assert cli.main(["-t", str(_suite_file(tmp_path)), "--tags", "smoke", "-r", "json"]) == 0

    def test_file_reporter_writes_outcome(self, tmp_path, mock_http):
        out = tmp_path / "reports" / "outcome.json"
        suite = _suite_file(tmp_path)
        config = _write(tmp_path / "config.json", {"env": "test"})
        assert cli.main(["-t", str(suite), "-c", str(config), "-r", "file", "-o", str(out)]) == 1

        data = json.loads(out.read_text(encoding="utf-8"))
        assert data["testsExecuted"] == 2
        assert data["testsFailed"] == 1
        assert [t["id"] for t in data["testResults"]] == ["ok", "bad"]
        assert not (tmp_path / "reports" / "outcome.json.tmp").exists()

    def test_custom_action_loaded(self, tmp_path, mock_http, capsys):
        action = tmp_path / "GreetAction.py"
        action.write_text("def perform(config, context):\n    return 'hi-' + config['who']\n", encoding="utf-8")
        suite = _suite_file(tmp_path, tests=[{
            "id": "greet",
            "steps": [{
                "actions": [{"name": "greet", "config": {"who": "bob"}, "output": "g"}],
                "request": {"url": "/{{g}}"},
                "validations": ['body.path == "/hi-bob"'],
            }],
        }])
        assert cli.main(["-t", str(suite), "-a", str(action), "-r", "json"]) == 0
        assert json.loads(capsys.readouterr().out)["testsFailed"] == 0

    def test_invalid_settings_exit_1(self, tmp_path):
        assert cli.main(["-t", str(_suite_file(tmp_path)), "--concurrency", "0"]) == 1

    @pytest.mark.parametrize("argv", [[], ["-t", "suite.json", "--no-such-flag"], ["-t", "s.json", "-r", "xml"]])
    def test_bad_arguments_exit_1(self, argv, capsys):
        assert cli.main(argv) == 1
        assert "usage:" in capsys.readouterr().err

    def test_help_exits_0(self, capsys):
        assert cli.main(["--help"]) == 0
        assert "--tests" in capsys.readouterr().out

    def test_exit_status_capped(self, tmp_path, monkeypatch):
        failing = aggregate([
            TestResult(id=f"t{i}", steps=[StepResult(name="s", validations=[ValidationResult(name="v", valid=False)])])
            for i in range(256)
        ])

        class StubRunner:
            def __init__(self, **kwargs):
                pass

            def run(self, suite):
                return failing

        monkeypatch.setattr(cli, "TestRunner", StubRunner)
        assert failing.summary.tests_failed == 256
        assert cli.main(["-t", str(_suite_file(tmp_path)), "-r", "json"]) == cli.MAX_EXIT_STATUS

    def test_logging_configured_before_loading(self, tmp_path, monkeypatch):
        calls = []
        monkeypatch.setattr(cli, "setup_logging", lambda level, verbose=False: calls.append("logging"))
        real_prepare = cli.prepare

        def tracking_prepare(args):
            calls.append("prepare")
            return real_prepare(args)

        monkeypatch.setattr(cli, "prepare", tracking_prepare)
        cli.main(["-t", str(tmp_path / "missing.json")])
        assert calls == ["logging", "prepare"]


class TestLoader:

    def test_glob_expansion_sorted_and_deduplicated(self, tmp_path):
        for name in ("b.json", "a.json"):
            _write(tmp_path / name, {"tests": []})
        paths = expand_paths([str(tmp_path / "*.json"), str(tmp_path / "a.json")])
        assert [p.name for p in paths] == ["a.json", "b.json"]

    def test_empty_glob_is_an_error(self, tmp_path):
        with pytest.raises(ConfigurationError, match="No files match"):
            expand_paths([str(tmp_path / "*.json")])

    def test_documents_tagged_with_source(self, tmp_path):
        path = _suite_file(tmp_path)
        [doc] = load_suite_documents([path])
        assert doc["_source"] == str(path.resolve())

    def test_non_object_documents_rejected(self, tmp_path):
        path = _write(tmp_path / "list.json", [1, 2])
        with pytest.raises(ConfigurationError):
            load_suite_documents([path])
        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_no_config_path(self):
        assert load_config(None) == {}

    def test_load_json_missing(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_json(tmp_path / "missing.json")


def _result():
    failing = StepResult(
        name="step 1",
        method="GET",
        url="/[x]",
        status_code=500,
        validations=[ValidationResult(name="status == 200", valid=False, actual=500, message="'500' != '200'")],
    )
    return aggregate([
        TestResult(id="[bracketed]", steps=[failing]),
        TestResult(id="skipped", skipped=True),
    ])


class TestReporters:

    def test_console_report(self):
        console = Console(file=io.StringIO(), record=True, width=120)
        report_console(_result(), console=console)
        text = console.export_text()
        assert "[bracketed]" in text
        assert "FAIL" in text
        assert "SKIP" in text
        assert "1 executed, 1 failed, 1 skipped" in text

    def test_json_report(self):
        stream = io.StringIO()
        report_json(_result(), stream=stream)
        data = json.loads(stream.getvalue())
        assert data["validationsFailed"] == 1
        assert data["testResults"][0]["steps"][0]["statusCode"] == 500
