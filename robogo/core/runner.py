"""Test-case and suite execution.

Each step goes through: skip evaluation, control flow, variable substitution,
action invocation under its recovery/retry policy, expect_error handling and
result binding. Top-level steps of a test case are partitioned into parallel
groups when step parallelism is enabled; nested if/for/while bodies always
run sequentially.
"""

from __future__ import annotations

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from robogo.core.actions import ActionRegistry, default_registry
from robogo.core.circuit_breaker import CircuitBreakerRegistry
from robogo.core.conditions import evaluate_condition, evaluate_skip, parse_loop_items
from robogo.core.config import RunnerConfig
from robogo.core.context import ExecutionContext
from robogo.core.dependencies import DependencyAnalyzer, StepGroup
from robogo.core.errors import (
    ErrorBuilder,
    RobogoError,
    classify_exception,
    execution_error,
    format_robogo_error,
    format_robogo_error_for_logging,
    get_robogo_error,
    timeout_error,
)
from robogo.core.expectations import check_expected_error
from robogo.core.models import (
    ParallelConfig,
    RecoveryStrategy,
    Step,
    StepResult,
    StepStatus,
    TestCase,
    TestResult,
    TestSuiteResult,
    merge_parallel_config,
)
from robogo.core.recovery import RecoveryExecutor
from robogo.core.retry import (
    RetryExecutor,
    RetryPolicy,
    format_retry_summary,
    matches_retry_conditions,
)
from robogo.core.substitution import SecretStore, VariableStore, VariableSubstitutor, stringify
from robogo.core.variables import VariableResolutionDebugger

logger = logging.getLogger(__name__)


@dataclass
class _CaseState:
    """Mutable state of one running test case."""

    test_case: TestCase
    variables: VariableStore
    secrets: SecretStore
    substitutor: VariableSubstitutor
    debugger: VariableResolutionDebugger
    parallel: ParallelConfig
    ctx: ExecutionContext
    results: list[StepResult] = field(default_factory=list)


class TestRunner:
    """Run test cases against an action registry.

    Example:
        runner = TestRunner(RunnerConfig(verbose=True))
        result = runner.run_test_case(load_test_case("tests/login.yaml"))
    """

    __test__ = False

    def __init__(
        self,
        config: RunnerConfig | None = None,
        registry: ActionRegistry | None = None,
        *,
        breakers: CircuitBreakerRegistry | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RunnerConfig()
        self.registry = registry or default_registry()
        self.breakers = breakers or CircuitBreakerRegistry()
        self._rng = rng

    # --- suites ---

    def run_suite(
        self,
        test_cases: list[TestCase],
        name: str = "suite",
        ctx: ExecutionContext | None = None,
    ) -> TestSuiteResult:
        """Run test cases, concurrently when test-case parallelism is on."""
        start = time.monotonic()
        ctx = ctx or ExecutionContext(self.config.timeout)
        parallel = self.config.parallel

        if parallel.enabled and parallel.test_cases and len(test_cases) > 1:
            workers = min(parallel.max_concurrency, len(test_cases))
            logger.info(f"Running {len(test_cases)} test cases with {workers} workers")
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self.run_test_case, tc, ctx) for tc in test_cases]
                results = [f.result() for f in futures]
        else:
            results = []
            for tc in test_cases:
                if self.config.fail_fast and any(r.status == StepStatus.FAILED for r in results):
                    results.append(
                        TestResult(
                            name=tc.name,
                            status=StepStatus.SKIPPED,
                            skip_reason="skipped after earlier failure (fail_fast)",
                        )
                    )
                    continue
                results.append(self.run_test_case(tc, ctx))

        return TestSuiteResult(name=name, duration=time.monotonic() - start, results=results)

    # --- test cases ---

    def run_test_case(
        self,
        test_case: TestCase,
        ctx: ExecutionContext | None = None,
    ) -> TestResult:
        start = time.monotonic()
        parent = ctx or ExecutionContext(self.config.timeout)

        try:
            state = self._prepare(test_case, parent)
        except RobogoError as e:
            logger.error(f"Test case '{test_case.name}' setup failed: {format_robogo_error_for_logging(e)}")
            return TestResult(
                name=test_case.name,
                status=StepStatus.FAILED,
                duration=time.monotonic() - start,
                error=format_robogo_error(e),
            )

        skip = evaluate_skip(test_case.skip, self._text_substituter(state))
        if skip.should_skip:
            logger.info(f"Skipping test case '{test_case.name}': {skip.reason}")
            return TestResult(
                name=test_case.name,
                status=StepStatus.SKIPPED,
                duration=time.monotonic() - start,
                skip_reason=skip.reason,
            )

        logger.info(f"Running test case '{test_case.name}' ({len(test_case.steps)} steps)")
        self._execute_steps(state, test_case.steps, prefix="", top_level=True)

        failed = [r for r in state.results if r.status == StepStatus.FAILED]
        status = StepStatus.FAILED if failed else StepStatus.PASSED
        duration = time.monotonic() - start
        logger.info(f"Test case '{test_case.name}' {status.value} in {duration:.3f}s")
        return TestResult(
            name=test_case.name,
            status=status,
            duration=duration,
            step_results=list(state.results),
            error=failed[0].error if failed else "",
        )

    def _prepare(self, test_case: TestCase, parent: ExecutionContext) -> _CaseState:
        base_dir = Path(test_case.source_file).parent if test_case.source_file else None
        secrets = SecretStore.from_config(test_case.variables.secrets, base_dir)
        substitutor = VariableSubstitutor(secrets)

        variables = VariableStore()
        for name, value in test_case.variables.vars.items():
            variables.set(name, substitutor.substitute(value, variables.snapshot()))

        parallel = merge_parallel_config(test_case.parallel) if test_case.parallel else self.config.parallel
        return _CaseState(
            test_case=test_case,
            variables=variables,
            secrets=secrets,
            substitutor=substitutor,
            debugger=VariableResolutionDebugger(
                enabled=self.config.debug_variables, context=test_case.name, secrets=secrets
            ),
            parallel=parallel,
            ctx=parent.child(test_case.timeout),
        )

    # --- step sequencing ---

    def _execute_steps(
        self,
        state: _CaseState,
        steps: list[Step],
        prefix: str,
        top_level: bool = False,
    ) -> bool:
        """Run steps in order, appending results. Returns True if halted by a failure."""
        if top_level and state.parallel.enabled and state.parallel.steps:
            groups = DependencyAnalyzer(state.parallel).group_steps(steps)
        else:
            groups = [StepGroup([s]) for s in steps]

        for group in groups:
            if state.ctx.done:
                state.results.append(self._cancelled_result(state, group.steps[0], prefix))
                return True

            if group.parallel:
                halted = self._run_parallel_group(state, group, prefix)
            else:
                halted = self._execute_step(state, group.steps[0], prefix)
            if halted:
                return True
        return False

    def _run_parallel_group(self, state: _CaseState, group: StepGroup, prefix: str) -> bool:
        workers = max(1, min(state.parallel.max_concurrency, len(group)))
        logger.debug(f"Running parallel group {group.names} with {workers} workers")
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = [
                executor.submit(self._run_grouped_step, state, step, prefix) for step in group.steps
            ]
            # Re-emit in original step order regardless of completion order
            results = [f.result() for f in futures]

        state.results.extend(results)
        return any(
            r.status == StepStatus.FAILED and not step.continue_on_failure
            for r, step in zip(results, group.steps)
        )

    def _run_grouped_step(self, state: _CaseState, step: Step, prefix: str) -> StepResult:
        skipped = self._skip_result(state, step, prefix)
        if skipped is not None:
            return skipped
        return self._run_action_step(state, step, prefix)

    def _skip_result(self, state: _CaseState, step: Step, prefix: str) -> StepResult | None:
        skip = evaluate_skip(step.skip, self._text_substituter(state))
        if not skip.should_skip:
            return None
        logger.info(f"Skipping step '{prefix}{step.name}': {skip.reason}")
        return StepResult(
            name=prefix + step.name,
            action=step.action,
            status=StepStatus.SKIPPED,
            skip_reason=skip.reason,
        )

    def _execute_step(self, state: _CaseState, step: Step, prefix: str) -> bool:
        skipped = self._skip_result(state, step, prefix)
        if skipped is not None:
            state.results.append(skipped)
            return False

        if step.has_control_flow:
            try:
                halted = self._execute_control_flow(state, step, prefix)
            except RobogoError as e:
                err = self._annotate(e, step, state)
                logger.error(f"Control flow '{prefix}{step.name}' failed: {format_robogo_error_for_logging(err)}")
                state.results.append(self._failed_result(state, step, prefix, err, 0.0))
                return not step.continue_on_failure
            return halted and not step.continue_on_failure

        result = self._run_action_step(state, step, prefix)
        state.results.append(result)
        return result.status == StepStatus.FAILED and not step.continue_on_failure

    # --- control flow ---

    def _execute_control_flow(self, state: _CaseState, step: Step, prefix: str) -> bool:
        if step.if_ is not None:
            block = step.if_
            condition = self._substitute_text(state, block.condition)
            body = block.then if evaluate_condition(condition) else block.else_
            return self._execute_steps(state, body, f"{prefix}{step.name}/If: ")

        if step.for_ is not None:
            block = step.for_
            spec = state.substitutor.substitute(block.condition, state.variables.snapshot())
            items = parse_loop_items(spec, block.max_iterations)
            for index, item in enumerate(items):
                state.variables.set("iteration", index + 1)
                state.variables.set("index", index)
                state.variables.set("item", item)
                if self._execute_steps(state, block.steps, f"{prefix}{step.name}/For: "):
                    return True
            return False

        return self._execute_while(state, step, prefix)

    def _execute_while(self, state: _CaseState, step: Step, prefix: str) -> bool:
        block = step.while_
        if block is None:
            return False
        iteration = 0
        while True:
            iteration += 1
            if iteration > block.max_iterations:
                raise (
                    execution_error(f"while loop exceeded maximum iterations ({block.max_iterations})")
                    .with_retryable(False)
                    .with_details({"max_iterations": block.max_iterations})
                )
            state.variables.set("iteration", iteration)
            if not evaluate_condition(self._substitute_text(state, block.condition)):
                return False
            if self._execute_steps(state, block.steps, f"{prefix}{step.name}/While: "):
                return True

    # --- action steps ---

    def _run_action_step(self, state: _CaseState, step: Step, prefix: str) -> StepResult:
        start = time.monotonic()
        name = prefix + step.name
        variables = state.variables.snapshot()
        args = state.substitutor.substitute(step.args, variables)
        options = state.substitutor.substitute(step.options, variables)
        warnings = self._debug_substitution(state, step, variables)
        metadata: dict[str, Any] = {}

        output: Any = None
        error: RobogoError | None = None
        try:
            output = self._invoke(state, step, args, options, metadata)
        except Exception as e:
            error = self._annotate(self._classify(e, step), step, state)

        duration = time.monotonic() - start
        output_text = state.secrets.mask_output(stringify(output))

        if step.expect_error is not None:
            try:
                check_expected_error(step.expect_error, error, output_text)
            except RobogoError as mismatch:
                return self._failed_result(
                    state, step, prefix, self._annotate(mismatch, step, state), duration,
                    output=output_text, warnings=warnings, metadata=metadata,
                )
            logger.info(f"Step '{name}' failed as expected")
            return StepResult(
                name=name,
                action=step.action,
                status=StepStatus.PASSED,
                duration=duration,
                output=state.secrets.mask_output(format_robogo_error(error)),
                error_type=error.type.value if error else None,
                warnings=warnings,
                metadata={**metadata, "expected_error": True},
            )

        if error is not None:
            logger.warning(f"Step '{name}' failed: {format_robogo_error_for_logging(error)}")
            return self._failed_result(
                state, step, prefix, error, duration,
                warnings=warnings, metadata=metadata,
            )

        if step.result:
            state.variables.set(step.result, output)
        logger.info(f"Step '{name}' passed in {duration:.3f}s")
        return StepResult(
            name=name,
            action=step.action,
            status=StepStatus.PASSED,
            duration=duration,
            output=output_text,
            warnings=warnings,
            metadata=metadata,
        )

    def _invoke(
        self,
        state: _CaseState,
        step: Step,
        args: list[Any],
        options: dict[str, Any],
        metadata: dict[str, Any],
    ) -> Any:
        """Call the step's action under its recovery or retry policy."""
        action = self.registry.get(step.action)
        ctx = state.ctx

        def call() -> Any:
            try:
                return action(args, options, ctx)
            except Exception as e:
                err = self._classify(e, step)
                if err is e:
                    raise
                raise err from e

        if step.recovery is not None:
            recovery = step.recovery
            key = f"{step.action}:{step.name}"
            breaker = None
            if recovery.strategy == RecoveryStrategy.CIRCUIT:
                breaker = self.breakers.get(key, recovery.circuit_breaker)
            fallback: Callable[[], Any] | None = None
            if recovery.strategy == RecoveryStrategy.FALLBACK:

                def fallback() -> Any:
                    return self.registry.get(recovery.fallback_action)(args, options, ctx)

            executor = RecoveryExecutor(
                recovery,
                name=key,
                circuit_breaker=breaker,
                verbose=self.config.verbose,
                rng=self._rng,
            )
            outcome = executor.execute_with_outcome(call, fallback, ctx)
            if outcome.recovered_from is not None:
                metadata["recovered_from"] = format_robogo_error(outcome.recovered_from)
                metadata["recovery_strategy"] = outcome.strategy.value
            return outcome.value

        if step.retry is not None:
            executor = RetryExecutor(
                RetryPolicy.from_config(step.retry), verbose=self.config.verbose, rng=self._rng
            )
            result = executor.execute_with_result(call, ctx)
            metadata["attempts"] = result.attempts
            if result.retry_logs:
                metadata["retry_logs"] = result.retry_logs
                logger.info(f"Step '{step.name}': {format_retry_summary(result, self.config.verbose)}")
            if not result.success:
                raise result.last_error  # type: ignore[misc]
            return result.value

        return call()

    # --- error handling ---

    def _classify(self, exc: BaseException, step: Step) -> RobogoError:
        """Turn any exception into a RobogoError, honouring step retry conditions."""
        err = get_robogo_error(exc)
        if err is None:
            err = (
                ErrorBuilder(classify_exception(exc), str(exc) or type(exc).__name__)
                .with_cause(exc)
                .with_action(step.action)
                .build()
            )
        conditions = _retry_conditions(step)
        if conditions:
            text = format_robogo_error(err)
            err = err.with_retryable(matches_retry_conditions(text, text, conditions))
        return err

    def _annotate(self, err: RobogoError, step: Step, state: _CaseState) -> RobogoError:
        if not err.step:
            err = err.with_step(step.name)
        if not err.action and step.action:
            err = err.with_action(step.action)
        if not err.test_case:
            err = err.with_test_case(state.test_case.name)
        return err

    def _failed_result(
        self,
        state: _CaseState,
        step: Step,
        prefix: str,
        error: RobogoError,
        duration: float,
        *,
        output: str = "",
        warnings: list[str] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> StepResult:
        meta = dict(metadata or {})
        meta["correlation_id"] = error.correlation_id
        if error.details:
            meta["details"] = {k: stringify(v) for k, v in error.details.items()}
        return StepResult(
            name=prefix + step.name,
            action=step.action,
            status=StepStatus.FAILED,
            duration=duration,
            output=output,
            error=state.secrets.mask_output(format_robogo_error(error)),
            error_type=error.type.value,
            warnings=warnings or [],
            metadata=meta,
        )

    def _cancelled_result(self, state: _CaseState, step: Step, prefix: str) -> StepResult:
        err = timeout_error(f"test case {state.ctx.reason} before step ran").with_details(
            {"reason": state.ctx.reason}
        )
        return self._failed_result(state, step, prefix, self._annotate(err, step, state), 0.0)

    # --- variables ---

    def _substitute_text(self, state: _CaseState, text: str) -> str:
        return state.substitutor.substitute_text(text, state.variables.snapshot())

    def _text_substituter(self, state: _CaseState) -> Callable[[str], str]:
        return lambda text: self._substitute_text(state, text)

    def _debug_substitution(
        self,
        state: _CaseState,
        step: Step,
        variables: dict[str, Any],
    ) -> list[str]:
        if not state.debugger.enabled:
            return []
        warnings: list[str] = []
        for original in _templates(step.args) + _templates(step.options):
            resolved = state.substitutor.substitute_text(original, variables)
            result = state.debugger.log_substitution(original, resolved, variables)
            if result is not None:
                warnings.extend(result.warnings)
        return warnings


def _retry_conditions(step: Step) -> list[str]:
    """Retry conditions of the policy that actually runs the step."""
    if step.recovery is not None:
        recovery = step.recovery
        if recovery.strategy == RecoveryStrategy.RETRY and recovery.retry is not None:
            return recovery.retry.conditions
        return []
    if step.retry is not None:
        return step.retry.conditions
    return []

def _templates(value: Any) -> list[str]:
    """Strings containing placeholders anywhere inside an args/options structure."""
    if isinstance(value, str):
        return [value] if "${" in value else []
    if isinstance(value, list):
        return [s for v in value for s in _templates(v)]
    if isinstance(value, dict):
        return [s for v in value.values() for s in _templates(v)]
    return []
