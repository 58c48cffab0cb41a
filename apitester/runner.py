# apitester/runner.py
"""
Test Runner

Drives tests in order and, inside a test, steps strictly in declared order:

    pre-request actions -> resolve request -> HTTP call
        -> post-response actions -> save -> validations -> StepResult

Every runtime failure (unknown action, action error, unresolved variable,
transport error) becomes a failing ValidationResult on the step that hit it;
the step, the test and the run all carry on. Anything else a step raises is
recorded as a single "error" result for that step.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from apitester.actions import ActionRegistry
from apitester.actions.base import ActionContext
from apitester.aggregator import SuiteResult, aggregate
from apitester.config import Settings
from apitester.suite_types import (
    ActionError,
    ActionInvocation,
    Step,
    StepResponse,
    StepResult,
    Suite,
    TestCase,
    TestResult,
    TestState,
    TransportError,
    UnknownActionError,
    UnresolvedVariableError,
    ValidationResult,
)
from apitester.transport import HttpTransport, ResolvedRequest
from apitester.validation import extract_selector, validate
from apitester.variables import VariableStore, is_missing

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unresolved_result(where: str, names: List[str]) -> ValidationResult:
    err = UnresolvedVariableError(names)
    return ValidationResult(
        name=f"unresolved variables in {where}",
        valid=False,
        kind="unresolved_variable",
        expected=names,
        message=str(err),
    )


class TestRunner:
    """
    Executes a Suite and returns the SuiteResult tree.

    Tests run one at a time unless settings.max_concurrency > 1; each test
    gets its own VariableStore and its own result slot either way.
    """
    __test__ = False

    def __init__(
        self,
        settings: Optional[Settings] = None,
        registry: Optional[ActionRegistry] = None,
        client: Optional[httpx.AsyncClient] = None,
        progress_cb: Optional[Callable[[Dict[str, Any]], None]] = None,
    ):
        self.settings = settings or Settings()
        self.registry = registry or ActionRegistry()
        self._client = client
        self._progress_cb = progress_cb
        self._states: Dict[str, TestState] = {}

    # ==================== Public API ====================

    def run(self, suite: Suite) -> SuiteResult:
        """Synchronous wrapper for run_async"""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            raise RuntimeError("run() called inside running loop; use await run_async()")

        return asyncio.run(self.run_async(suite))

    async def run_async(self, suite: Suite) -> SuiteResult:
        time_started = _now()
        tests = list(suite.tests)
        self._states = {t.id: TestState.PENDING for t in tests}
        # Suite-scope bindings made by earlier tests
        promoted: Dict[str, Any] = {}

        self._emit("run_start", tests=len(tests))
        logger.info(f"Running {len(tests)} test(s)")

        slots: List[Optional[TestResult]] = [None] * len(tests)

        async with HttpTransport(self.settings, client=self._client) as transport:
            concurrency = max(1, int(self.settings.max_concurrency))

            if concurrency == 1:
                for index, test in enumerate(tests):
                    slots[index] = await self._run_test(transport, suite, test, promoted)
            else:
                semaphore = asyncio.Semaphore(concurrency)

                async def run_slot(index: int, test: TestCase) -> None:
                    async with semaphore:
                        slots[index] = await self._run_test(transport, suite, test, promoted)

                await asyncio.gather(*(run_slot(i, t) for i, t in enumerate(tests)))

        result = aggregate(slots, time_started=time_started, time_ended=_now())
        summary = result.summary
        self._emit("run_done", **summary.to_dict())
        logger.info(
            f"Run finished: {summary.tests_executed} executed, {summary.tests_failed} failed, "
            f"{summary.tests_skipped} skipped"
        )
        return result

    def state_of(self, test_id: str) -> TestState:
        return self._states.get(test_id, TestState.PENDING)

    # ==================== Tests ====================

    async def _run_test(
        self,
        transport: HttpTransport,
        suite: Suite,
        test: TestCase,
        promoted: Dict[str, Any],
    ) -> TestResult:
        result = TestResult(id=test.id, name=test.name, tags=sorted(test.tags), started_at=_now())

        if test.skip:
            result.skipped = True
            result.ended_at = result.started_at
            self._states[test.id] = TestState.SKIPPED
            logger.info(f"⏭️ {test.id}: skipped")
            self._emit("test_done", id=test.id, state=TestState.SKIPPED.value)
            return result

        self._states[test.id] = TestState.RUNNING
        self._emit("test_start", id=test.id, steps=len(test.steps))

        store = VariableStore(suite_variables=suite.variables, config=suite.config, promoted=promoted)
        store.update(test.variables)

        for index, step in enumerate(test.steps, start=1):
            try:
                step_result = await self._run_step(transport, test, step, index, store)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"{test.id}: step {index} raised unexpectedly")
                step_result = StepResult(
                    name=step.name or f"step {index}",
                    method=step.request.method,
                    url=step.request.url,
                    validations=[ValidationResult(
                        name="step error",
                        valid=False,
                        kind="error",
                        message=f"{type(e).__name__}: {e}",
                        actual=type(e).__name__,
                    )],
                )
            result.steps.append(step_result)

        result.ended_at = _now()
        self._states[test.id] = result.state

        if result.passed:
            logger.info(f"✅ {test.id}: passed")
        else:
            failed = sum(1 for v in result.validations if not v.valid)
            logger.info(f"❌ {test.id}: failed ({failed} invalid validation(s))")

        self._emit("test_done", id=test.id, state=result.state.value)
        return result

    # ==================== Steps ====================

    async def _run_step(
        self,
        transport: HttpTransport,
        test: TestCase,
        step: Step,
        index: int,
        store: VariableStore,
    ) -> StepResult:
        step_name = step.name or f"step {index}"
        out = StepResult(name=step_name, method=step.request.method)
        synthetic: List[ValidationResult] = []

        for invocation in step.pre_actions:
            synthetic.extend(await self._run_action(invocation, test, step, store, response=None))

        resolution = store.resolve(step.request.as_template())
        if resolution.unresolved:
            logger.warning(f"{test.id}/{step_name}: unresolved variable(s) {resolution.unresolved}")
            synthetic.append(_unresolved_result("request", resolution.unresolved))

        request = ResolvedRequest.from_template(resolution.value, timeout=step.request.timeout)
        out.method, out.url = request.method, request.url

        response: Optional[StepResponse] = None
        try:
            response = await transport.send(request)
            out.status_code = response.status_code
            out.elapsed_ms = response.elapsed_ms
        except TransportError as e:
            logger.warning(f"{test.id}/{step_name}: {e}")
            synthetic.append(ValidationResult(
                name="transport",
                valid=False,
                kind="transport",
                message=str(e),
                actual="timeout" if e.timed_out else type(e.cause).__name__ if e.cause else None,
            ))
        except Exception as e:
            logger.exception(f"{test.id}/{step_name}: unexpected error issuing request")
            synthetic.append(ValidationResult(
                name="transport",
                valid=False,
                kind="transport",
                message=f"{type(e).__name__}: {e}",
                actual=type(e).__name__,
            ))

        if response is not None:
            for invocation in step.post_actions:
                synthetic.extend(await self._run_action(invocation, test, step, store, response=response))
            self._save(step, response, store)
        elif step.post_actions:
            logger.debug(f"{test.id}/{step_name}: no response, post-response actions not run")

        out.validations = synthetic + validate(step.validations, response, store)
        return out

    async def _run_action(
        self,
        invocation: ActionInvocation,
        test: TestCase,
        step: Step,
        store: VariableStore,
        response: Optional[StepResponse],
    ) -> List[ValidationResult]:
        """Invoke one action and bind its output; returns synthetic failures, if any."""
        failures: List[ValidationResult] = []
        label = f"action {invocation.name}"

        resolution = store.resolve(invocation.config)
        if resolution.unresolved:
            failures.append(_unresolved_result(label, resolution.unresolved))

        context = ActionContext(test_id=test.id, variables=store.view(), step=step, response=response)
        try:
            value = await self.registry.invoke(invocation.name, resolution.value, context)
        except (UnknownActionError, ActionError) as e:
            logger.warning(f"{test.id}: {e}")
            failures.append(ValidationResult(
                name=label,
                valid=False,
                kind="action",
                message=str(e),
                actual=type(getattr(e, "cause", e)).__name__,
            ))
            return failures

        if invocation.output:
            store.bind(invocation.output, value, scope=invocation.scope)
            logger.debug(f"{test.id}: action '{invocation.name}' bound '{invocation.output}'")
        return failures

    @staticmethod
    def _save(step: Step, response: StepResponse, store: VariableStore) -> None:
        """Bind response facets named in the step's `save` map."""
        for var, selector in step.save.items():
            value = extract_selector(response, selector)
            if is_missing(value):
                logger.debug(f"save '{var}': {selector} not present in response")
                continue
            store.bind(var, value)

    # ==================== Internals ====================

    def _emit(self, event: str, **data):
        """Emit progress event"""
        if self._progress_cb:
            try:
                self._progress_cb({"event": event, **data})
            except Exception:
                logger.debug("progress_cb failed", exc_info=True)


def run_suite(
    suite: Suite,
    settings: Optional[Settings] = None,
    registry: Optional[ActionRegistry] = None,
) -> SuiteResult:
    """Convenience one-shot run."""
    return TestRunner(settings=settings, registry=registry).run(suite)
