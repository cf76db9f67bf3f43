"""Tests for TestRunner step and suite execution."""

import threading

import pytest

from conftest import FakeClock, make_case
from robogo.core.circuit_breaker import CircuitBreakerRegistry
from robogo.core.conditions import NO_REASON
from robogo.core.config import RunnerConfig
from robogo.core.context import ExecutionContext
from robogo.core.models import StepStatus
from robogo.core.runner import TestRunner


def statuses(result):
    return [(r.name, r.status) for r in result.step_results]


class Counter:
    """Action that fails `failures` times with `exc`, then returns "ok"."""

    def __init__(self, failures: int, exc: Exception):
        self.failures = failures
        self.exc = exc
        self.calls = 0

    def __call__(self, args, options, ctx):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


class TestSequentialExecution:
    def test_result_binding_and_assert(self, make_runner):
        case = make_case(
            [
                {"name": "greet", "action": "log", "args": ["hello"], "result": "said"},
                {"name": "check", "action": "assert", "args": ["${said}", "==", "hello"]},
            ]
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.PASSED
        assert statuses(result) == [("greet", StepStatus.PASSED), ("check", StepStatus.PASSED)]
        assert result.step_results[0].output == "hello"
        assert result.step_results[1].output == "Assertion passed"

    def test_variables_resolve_in_order(self, make_runner):
        case = make_case(
            [{"name": "show", "action": "log", "args": ["${url}"]}],
            variables={"vars": {"host": "example.org", "url": "https://${host}/api"}},
        )

        result = make_runner().run_test_case(case)

        assert result.step_results[0].output == "https://example.org/api"

    def test_failure_halts_test_case(self, make_runner):
        case = make_case(
            [
                {"name": "broken", "action": "fail", "args": ["boom"]},
                {"name": "after", "action": "log", "args": ["never"]},
            ]
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.FAILED
        assert statuses(result) == [("broken", StepStatus.FAILED)]
        assert result.error == "boom"
        assert result.step_results[0].error_type == "execution"
        assert "correlation_id" in result.step_results[0].metadata

    def test_continue_on_failure(self, make_runner):
        case = make_case(
            [
                {"name": "broken", "action": "fail", "args": ["boom"], "continue": True},
                {"name": "after", "action": "log", "args": ["still runs"]},
            ]
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.FAILED
        assert statuses(result) == [("broken", StepStatus.FAILED), ("after", StepStatus.PASSED)]

    def test_unknown_action(self, make_runner):
        result = make_runner().run_test_case(make_case([{"name": "x", "action": "nope"}]))

        step = result.step_results[0]
        assert step.status == StepStatus.FAILED
        assert step.error == "resource 'action:nope' not found"
        assert step.error_type == "validation"

    def test_plain_exceptions_are_classified(self, make_runner, registry):
        def explode(args, options, ctx):
            raise KeyError("missing-key")

        registry.register("explode", explode)

        result = make_runner().run_test_case(make_case([{"name": "x", "action": "explode"}]))

        assert result.step_results[0].error_type == "validation"
        assert "missing-key" in result.step_results[0].error


class TestSkipping:
    def test_step_skip(self, make_runner):
        case = make_case(
            [
                {"name": "a", "action": "log", "args": ["x"], "skip": True},
                {"name": "b", "action": "log", "args": ["x"], "skip": "not on ${env}"},
                {"name": "c", "action": "log", "args": ["x"]},
            ],
            variables={"vars": {"env": "ci"}},
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.PASSED
        assert [r.status for r in result.step_results] == [
            StepStatus.SKIPPED,
            StepStatus.SKIPPED,
            StepStatus.PASSED,
        ]
        assert result.step_results[0].skip_reason == NO_REASON
        assert result.step_results[1].skip_reason == "not on ci"
        assert result.skipped_steps == 2

    def test_test_case_skip(self, make_runner):
        case = make_case([{"name": "a", "action": "fail"}], skip="flaky upstream")

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.SKIPPED
        assert result.skip_reason == "flaky upstream"
        assert result.step_results == []


class TestExpectError:
    def test_expected_error_passes(self, make_runner):
        case = make_case([{"name": "a", "action": "fail", "args": ["boom"], "expect_error": "boom"}])

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.PASSED
        assert step.output == "boom"
        assert step.metadata["expected_error"] is True

    def test_mismatched_error_fails(self, make_runner):
        case = make_case(
            [{"name": "a", "action": "fail", "args": ["boom"], "expect_error": {"type": "exact", "message": "bang"}}]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.FAILED
        assert step.error == "error expectation failed: 'boom' exact 'bang'"
        assert step.error_type == "assertion"

    def test_success_when_error_expected(self, make_runner):
        case = make_case([{"name": "a", "action": "log", "args": ["fine"], "expect_error": "any"}])

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.FAILED
        assert step.error == "expected any error but action succeeded with result: 'fine'"


class TestControlFlow:
    def test_if_then(self, make_runner):
        case = make_case(
            [
                {
                    "name": "branch",
                    "if": {
                        "condition": "${count} > 1",
                        "then": [{"name": "many", "action": "log", "args": ["many"]}],
                        "else": [{"name": "few", "action": "log", "args": ["few"]}],
                    },
                }
            ],
            variables={"vars": {"count": 5}},
        )

        result = make_runner().run_test_case(case)

        assert statuses(result) == [("branch/If: many", StepStatus.PASSED)]

    def test_if_else(self, make_runner):
        case = make_case(
            [
                {
                    "name": "branch",
                    "if": {
                        "condition": "${count} > 1",
                        "then": [{"name": "many", "action": "log", "args": ["many"]}],
                        "else": [{"name": "few", "action": "log", "args": ["few"]}],
                    },
                }
            ],
            variables={"vars": {"count": 0}},
        )

        result = make_runner().run_test_case(case)

        assert statuses(result) == [("branch/If: few", StepStatus.PASSED)]

    def test_for_range(self, make_runner):
        case = make_case(
            [
                {
                    "name": "loop",
                    "for": {
                        "condition": "1..3",
                        "steps": [{"name": "say", "action": "log", "args": ["${item}/${iteration}"]}],
                    },
                }
            ]
        )

        result = make_runner().run_test_case(case)

        assert [r.name for r in result.step_results] == ["loop/For: say"] * 3
        assert [r.output for r in result.step_results] == ["1/1", "2/2", "3/3"]

    def test_for_over_list_variable(self, make_runner):
        case = make_case(
            [
                {
                    "name": "loop",
                    "for": {
                        "condition": "${users}",
                        "steps": [{"name": "say", "action": "log", "args": ["${item}"]}],
                    },
                }
            ],
            variables={"vars": {"users": ["ann", "bob"]}},
        )

        result = make_runner().run_test_case(case)

        assert [r.output for r in result.step_results] == ["ann", "bob"]

    def test_while(self, make_runner):
        case = make_case(
            [
                {
                    "name": "poll",
                    "while": {
                        "condition": "${iteration} <= 3",
                        "steps": [{"name": "tick", "action": "log", "args": ["${iteration}"]}],
                    },
                }
            ]
        )

        result = make_runner().run_test_case(case)

        assert [r.output for r in result.step_results] == ["1", "2", "3"]

    def test_while_max_iterations(self, make_runner):
        case = make_case(
            [
                {
                    "name": "spin",
                    "while": {
                        "condition": "true",
                        "max_iterations": 2,
                        "steps": [{"name": "tick", "action": "log", "args": ["x"]}],
                    },
                },
                {"name": "after", "action": "log", "args": ["never"]},
            ]
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.FAILED
        assert [r.name for r in result.step_results] == ["spin/While: tick", "spin/While: tick", "spin"]
        assert result.step_results[-1].error == "while loop exceeded maximum iterations (2)"

    def test_bad_condition_fails_block(self, make_runner):
        case = make_case(
            [{"name": "branch", "if": {"condition": "perhaps", "then": []}, "continue": True}]
        )

        result = make_runner().run_test_case(case)

        assert statuses(result) == [("branch", StepStatus.FAILED)]
        assert result.step_results[0].error == "unable to evaluate condition: perhaps"

    def test_failure_inside_block_halts(self, make_runner):
        case = make_case(
            [
                {
                    "name": "loop",
                    "for": {"condition": "3", "steps": [{"name": "bad", "action": "fail"}]},
                },
                {"name": "after", "action": "log", "args": ["x"]},
            ]
        )

        result = make_runner().run_test_case(case)

        assert statuses(result) == [("loop/For: bad", StepStatus.FAILED)]


class TestRetryAndRecovery:
    def test_retry_until_success(self, make_runner, registry):
        flaky = Counter(2, ConnectionError("connection refused"))
        registry.register("flaky", flaky)
        case = make_case([{"name": "call", "action": "flaky", "retry": {"attempts": 3, "delay": 0}}])

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.PASSED
        assert step.output == "ok"
        assert flaky.calls == 3
        assert step.metadata["attempts"] == 3
        assert len(step.metadata["retry_logs"]) == 2

    def test_retry_exhaustion(self, make_runner, registry):
        flaky = Counter(10, ConnectionError("connection refused"))
        registry.register("flaky", flaky)
        case = make_case([{"name": "call", "action": "flaky", "retry": {"attempts": 3, "delay": 0}}])

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.FAILED
        assert flaky.calls == 3
        assert step.metadata["attempts"] == 3
        assert step.error_type == "execution"
        assert "connection refused" in step.error

    def test_retry_conditions_block_unmatched_errors(self, make_runner, registry):
        flaky = Counter(10, ConnectionError("connection refused"))
        registry.register("flaky", flaky)
        case = make_case(
            [{"name": "call", "action": "flaky", "retry": {"attempts": 3, "delay": 0, "conditions": ["5xx"]}}]
        )

        make_runner().run_test_case(case)

        assert flaky.calls == 1

    def test_retry_conditions_enable_otherwise_permanent_errors(self, make_runner, registry):
        flaky = Counter(1, ValueError("bad payload"))
        registry.register("flaky", flaky)
        case = make_case(
            [{"name": "call", "action": "flaky", "retry": {"attempts": 3, "delay": 0, "conditions": ["all"]}}]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.PASSED
        assert flaky.calls == 2

    def test_recovery_retry_conditions_apply(self, make_runner, registry):
        flaky = Counter(10, ValueError("HTTP 503 from upstream"))
        registry.register("flaky", flaky)
        case = make_case(
            [
                {
                    "name": "call",
                    "action": "flaky",
                    "recovery": {
                        "strategy": "retry",
                        "retry": {"attempts": 3, "delay": 0, "conditions": ["all"]},
                    },
                }
            ]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.FAILED
        assert flaky.calls == 3

    def test_recovery_retry_conditions_block_unmatched_errors(self, make_runner, registry):
        flaky = Counter(10, ConnectionError("connection refused"))
        registry.register("flaky", flaky)
        case = make_case(
            [
                {
                    "name": "call",
                    "action": "flaky",
                    "recovery": {
                        "strategy": "retry",
                        "retry": {"attempts": 3, "delay": 0, "conditions": ["5xx"]},
                    },
                }
            ]
        )

        make_runner().run_test_case(case)

        assert flaky.calls == 1

    def test_fallback_recovery(self, make_runner):
        case = make_case(
            [
                {
                    "name": "primary",
                    "action": "fail",
                    "args": ["boom"],
                    "recovery": {"strategy": "fallback", "fallback_action": "log"},
                }
            ]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.PASSED
        assert step.output == "boom"
        assert step.metadata["recovery_strategy"] == "fallback"
        assert step.metadata["recovered_from"] == "boom"

    def test_fallback_resolved_only_when_needed(self, make_runner):
        case = make_case(
            [
                {
                    "name": "primary",
                    "action": "log",
                    "args": ["fine"],
                    "recovery": {"strategy": "fallback", "fallback_action": "no_such_action"},
                }
            ]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.PASSED
        assert step.output == "fine"

    def test_unknown_fallback_fails_when_primary_fails(self, make_runner):
        case = make_case(
            [
                {
                    "name": "primary",
                    "action": "fail",
                    "args": ["boom"],
                    "recovery": {"strategy": "fallback", "fallback_action": "no_such_action"},
                }
            ]
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.status == StepStatus.FAILED
        assert "no_such_action" in step.error

    def test_skip_recovery_reports_no_error(self, make_runner):
        case = make_case(
            [
                {
                    "name": "optional",
                    "action": "fail",
                    "recovery": {"strategy": "skip", "skip_on_error": True},
                }
            ]
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.PASSED
        assert result.step_results[0].error == ""
        assert result.step_results[0].output == ""

    def test_circuit_breaker_shared_across_runs(self, registry, rng):
        down = Counter(100, ConnectionError("connection refused"))
        registry.register("down", down)
        runner = TestRunner(RunnerConfig(), registry, breakers=CircuitBreakerRegistry(FakeClock()), rng=rng)
        case = make_case(
            [
                {
                    "name": "call",
                    "action": "down",
                    "recovery": {
                        "strategy": "circuit",
                        "circuit_breaker": {"failure_threshold": 1, "success_threshold": 1, "timeout": 60},
                    },
                }
            ]
        )

        first = runner.run_test_case(case).step_results[0]
        second = runner.run_test_case(case).step_results[0]

        assert first.error == "connection refused"
        assert second.error == "circuit breaker is open for operation 'down:call'"
        assert down.calls == 1
        assert runner.breakers.keys() == ["down:call"]


class TestSecrets:
    def test_output_is_masked(self, make_runner):
        case = make_case(
            [{"name": "show", "action": "log", "args": ["token=${SECRETS.api}"]}],
            variables={"secrets": {"api": {"value": "s3cret-value"}}},
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.output == "token=[MASKED]"

    def test_error_is_masked(self, make_runner):
        case = make_case(
            [{"name": "leak", "action": "fail", "args": ["bad token ${SECRETS.api}"]}],
            variables={"secrets": {"api": {"value": "s3cret-value"}}},
        )

        step = make_runner().run_test_case(case).step_results[0]

        assert step.error == "bad token [MASKED]"

    def test_unreadable_secret_fails_test_case(self, make_runner, tmp_path):
        case = make_case(
            [{"name": "a", "action": "log"}],
            variables={"secrets": {"api": {"file": str(tmp_path / "missing.txt")}}},
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.FAILED
        assert result.step_results == []
        assert result.error


class TestDebugVariables:
    def test_unresolved_variables_become_warnings(self, make_runner):
        case = make_case([{"name": "show", "action": "log", "args": ["id=${missing}"]}])

        step = make_runner(debug_variables=True).run_test_case(case).step_results[0]

        assert step.output == "id=${missing}"
        assert step.warnings == ["Variable 'missing' is not defined"]

    def test_disabled_by_default(self, make_runner):
        case = make_case([{"name": "show", "action": "log", "args": ["id=${missing}"]}])

        assert make_runner().run_test_case(case).step_results[0].warnings == []


class TestParallelSteps:
    @staticmethod
    def barrier_action(parties: int):
        barrier = threading.Barrier(parties, timeout=5)

        def action(args, options, ctx):
            barrier.wait()
            return threading.current_thread().name

        return action

    def test_independent_steps_run_concurrently(self, make_runner, registry):
        registry.register("sleep", self.barrier_action(2))
        case = make_case(
            [
                {"name": "a", "action": "sleep", "args": ["0"]},
                {"name": "b", "action": "sleep", "args": ["0"]},
                {"name": "c", "action": "log", "args": ["after"], "result": "done"},
            ]
        )

        result = make_runner(parallel={"enabled": True, "steps": True, "max_concurrency": 4}).run_test_case(case)

        assert result.status == StepStatus.PASSED
        assert [r.name for r in result.step_results] == ["a", "b", "c"]
        assert result.step_results[0].output != result.step_results[1].output

    def test_sequential_when_step_parallelism_disabled(self, make_runner, registry):
        calls = []

        def record(args, options, ctx):
            calls.append(args[0])
            return args[0]

        registry.register("sleep", record)
        case = make_case(
            [{"name": f"s{i}", "action": "sleep", "args": [str(i)]} for i in range(4)]
        )

        result = make_runner(parallel={"enabled": True, "steps": False}).run_test_case(case)

        assert result.status == StepStatus.PASSED
        assert calls == ["0", "1", "2", "3"]

    def test_skip_honoured_in_parallel_group(self, make_runner, registry):
        ran = []

        def record(args, options, ctx):
            ran.append(args[0])
            return args[0]

        registry.register("log", record)
        case = make_case(
            [
                {"name": "first", "action": "log", "args": ["1"]},
                {"name": "second", "action": "log", "args": ["2"], "skip": True},
                {"name": "third", "action": "log", "args": ["3"], "skip": "not today"},
                {"name": "fourth", "action": "log", "args": ["4"]},
            ]
        )

        result = make_runner(parallel={"enabled": True, "steps": True, "max_concurrency": 4}).run_test_case(case)

        assert statuses(result) == [
            ("first", StepStatus.PASSED),
            ("second", StepStatus.SKIPPED),
            ("third", StepStatus.SKIPPED),
            ("fourth", StepStatus.PASSED),
        ]
        assert result.step_results[1].skip_reason == NO_REASON
        assert result.step_results[2].skip_reason == "not today"
        assert sorted(ran) == ["1", "4"]

    def test_test_case_parallel_overrides_runner(self, make_runner, registry):
        registry.register("sleep", self.barrier_action(2))
        case = make_case(
            [
                {"name": "a", "action": "sleep", "args": ["0"]},
                {"name": "b", "action": "sleep", "args": ["0"]},
            ],
            parallel={"enabled": True, "steps": True, "max_concurrency": 2},
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.PASSED


class TestTimeouts:
    def test_test_case_timeout_interrupts_sleep(self, make_runner):
        case = make_case(
            [
                {"name": "slow", "action": "sleep", "args": ["5s"]},
                {"name": "after", "action": "log", "args": ["never"]},
            ],
            timeout="50ms",
        )

        result = make_runner().run_test_case(case)

        assert result.status == StepStatus.FAILED
        assert statuses(result) == [("slow", StepStatus.FAILED)]
        assert result.step_results[0].error_type == "timeout"

    def test_cancelled_context_fails_before_running(self, make_runner):
        ctx = ExecutionContext()
        ctx.cancel()
        case = make_case([{"name": "a", "action": "log", "args": ["x"]}])

        result = make_runner().run_test_case(case, ctx)

        assert statuses(result) == [("a", StepStatus.FAILED)]
        assert result.step_results[0].error == "test case cancelled before step ran"


class TestSuites:
    def test_sequential_suite(self, make_runner):
        cases = [
            make_case([{"name": "ok", "action": "log"}], name="good"),
            make_case([{"name": "bad", "action": "fail"}], name="bad"),
            make_case([{"name": "ok", "action": "log"}], name="skipped", skip=True),
        ]

        suite = make_runner().run_suite(cases, name="nightly")

        assert suite.name == "nightly"
        assert [r.name for r in suite.results] == ["good", "bad", "skipped"]
        assert (suite.passed, suite.failed, suite.skipped) == (1, 1, 1)
        assert suite.status == StepStatus.FAILED

    def test_fail_fast(self, make_runner):
        cases = [
            make_case([{"name": "bad", "action": "fail"}], name="first"),
            make_case([{"name": "ok", "action": "log"}], name="second"),
        ]

        suite = make_runner(fail_fast=True).run_suite(cases)

        assert [r.status for r in suite.results] == [StepStatus.FAILED, StepStatus.SKIPPED]
        assert "fail_fast" in suite.results[1].skip_reason

    def test_parallel_test_cases_keep_order(self, make_runner, registry):
        registry.register("rendezvous", self.rendezvous(2))
        cases = [
            make_case([{"name": "meet", "action": "rendezvous"}], name=f"case-{i}") for i in range(2)
        ]

        suite = make_runner(parallel={"enabled": True, "max_concurrency": 2}).run_suite(cases)

        assert [r.name for r in suite.results] == ["case-0", "case-1"]
        assert suite.passed == 2

    @staticmethod
    def rendezvous(parties: int):
        barrier = threading.Barrier(parties, timeout=5)

        def action(args, options, ctx):
            barrier.wait()
            return "met"

        return action


@pytest.mark.parametrize("attempts", [1, 2, 4])
def test_retry_attempt_budget(make_runner, registry, attempts):
    flaky = Counter(100, TimeoutError("timed out"))
    registry.register("flaky", flaky)
    case = make_case([{"name": "call", "action": "flaky", "retry": {"attempts": attempts, "delay": 0}}])

    make_runner().run_test_case(case)

    assert flaky.calls == attempts
