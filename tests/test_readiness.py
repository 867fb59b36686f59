"""Tests for readiness conditions and the polling waiter."""

import pytest

from conftest import NOT_FOUND, Response, is_get, is_rollout

from kube_deploy.executor.cancellation import CancellationToken
from kube_deploy.orchestrator.readiness import (
    JobSucceededCondition,
    ReadinessQuery,
    ReadinessWaiter,
    RolloutCompleteCondition,
    WaitStatus,
    ZeroReplicasCondition,
)
from kube_deploy.utils.errors import ExecutionError, OperationCancelledError

POLL = 0.01


def deployment_scaled_down(name="api"):
    return ReadinessQuery("deployment", name, "web", ZeroReplicasCondition())


def job_succeeded(name="migrate"):
    return ReadinessQuery("job", name, "web", JobSucceededCondition())


class TestZeroReplicas:
    def test_command(self):
        query = deployment_scaled_down()
        assert query.condition.command(query) == [
            "get", "deployment", "api", "-n", "web", "-o=jsonpath='{.spec.replicas}'"
        ]

    def test_missing_deployment_counts_as_scaled_down(self, executor):
        executor.when(is_get("deployment", "api"), NOT_FOUND)

        result = ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)

        assert result.status == WaitStatus.ABSENT
        assert result.is_satisfied()
        assert result.attempts == 1

    def test_polls_until_zero(self, executor):
        executor.when(
            is_get("deployment", "api"),
            Response(stdout="'3'"), Response(stdout="'1'"), Response(stdout="'0'"),
        )

        result = ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)

        assert result.status == WaitStatus.SATISFIED
        assert result.attempts == 3
        assert result.observed == "0 replicas"

    def test_unparseable_count_is_fatal(self, executor):
        executor.when(is_get("deployment", "api"), Response(stdout="'three'"))

        with pytest.raises(ExecutionError) as exc_info:
            ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)

        assert exc_info.value.context.resource_name == "api"
        assert len(executor.calls) == 1

    def test_empty_count_is_fatal(self, executor):
        executor.when(is_get("deployment", "api"), Response(stdout="''"))

        with pytest.raises(ExecutionError):
            ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)

    def test_other_failures_are_fatal(self, executor):
        executor.when(is_get("deployment", "api"), Response(exit_code=1, stderr="Unauthorized"))

        with pytest.raises(ExecutionError):
            ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)

    def test_missing_auth_plugin_is_not_an_absent_deployment(self, executor):
        executor.when(
            is_get("deployment", "api"),
            Response(exit_code=1,
                     stderr='error: exec: "gke-gcloud-auth-plugin": executable file not found in $PATH'),
        )

        with pytest.raises(ExecutionError):
            ReadinessWaiter(executor).wait_for(deployment_scaled_down(), POLL)


class TestRolloutComplete:
    def test_satisfied_when_status_returns(self, executor):
        executor.when(
            is_rollout("statefulset", "db"),
            Response(stdout='statefulset rolling update complete 3 pods at revision db-7f...\n'),
        )
        query = ReadinessQuery("statefulset", "db", "web", RolloutCompleteCondition())

        result = ReadinessWaiter(executor).wait_for(query, POLL)

        assert result.status == WaitStatus.SATISFIED
        assert executor.calls == [["rollout", "status", "statefulset", "db", "-n", "web"]]

    def test_failed_rollout_is_fatal(self, executor):
        executor.when(
            is_rollout("deployment", "api"),
            Response(exit_code=1, stderr="error: deployment \"api\" exceeded its progress deadline"),
        )
        query = ReadinessQuery("deployment", "api", "web", RolloutCompleteCondition())

        with pytest.raises(ExecutionError):
            ReadinessWaiter(executor).wait_for(query, POLL)


class TestJobSucceeded:
    def test_empty_output_means_pending(self, executor):
        executor.when(is_get("job", "migrate"), Response(stdout="''"), Response(stdout="'1'"))

        result = ReadinessWaiter(executor).wait_for(job_succeeded(), POLL)

        assert result.status == WaitStatus.SATISFIED
        assert result.attempts == 2

    def test_missing_job_is_not_treated_as_done(self, executor):
        executor.when(
            is_get("job", "migrate"),
            Response(exit_code=1, stderr='Error from server (NotFound): jobs.batch "migrate" not found'),
        )

        with pytest.raises(ExecutionError):
            ReadinessWaiter(executor).wait_for(job_succeeded(), POLL)

    def test_completions_threshold(self, executor):
        executor.when(is_get("job", "batch"), Response(stdout="'2'"), Response(stdout="'3'"))
        query = ReadinessQuery("job", "batch", "web", JobSucceededCondition(completions=3))

        result = ReadinessWaiter(executor).wait_for(query, POLL)

        assert result.attempts == 2


class TestWaiterStopping:
    def test_timeout_returns_timed_out(self, executor):
        executor.when(is_get("job", "migrate"), Response(stdout="''"))

        result = ReadinessWaiter(executor).wait_for(job_succeeded(), POLL, timeout=0.2)

        assert result.status == WaitStatus.TIMED_OUT
        assert result.timed_out()
        assert result.attempts >= 1

    def test_run_cancellation_raises(self, executor):
        token = CancellationToken()
        token.cancel("received SIGTERM")

        with pytest.raises(OperationCancelledError):
            ReadinessWaiter(executor).wait_for(job_succeeded(), POLL, token)

        assert executor.calls == []

    def test_run_cancellation_during_timeout_wait_raises(self, executor):
        token = CancellationToken()

        def cancel_run(args, _token):
            token.cancel("received SIGINT")
            return Response(stdout="''")

        executor.when(is_get("job", "migrate"), cancel_run)

        with pytest.raises(OperationCancelledError):
            ReadinessWaiter(executor).wait_for(job_succeeded(), POLL, token, timeout=10)
