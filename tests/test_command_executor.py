"""Tests for the subprocess executor, using the Python interpreter as the child binary."""

import sys
import threading
import time

import pytest

from kube_deploy.executor.cancellation import CancellationToken
from kube_deploy.executor.command import (
    CommandCondition,
    CommandExecutor,
    CommandResult,
    classify,
)
from kube_deploy.utils.errors import ErrorContext, ExecutionError, OperationCancelledError


@pytest.fixture
def python():
    return CommandExecutor(binary=sys.executable, poll_interval=0.05, termination_grace=2.0)


class TestClassify:
    def test_zero_exit_is_success(self):
        assert classify(0, "", "not found") == CommandCondition.SUCCEEDED

    def test_not_found_from_server(self):
        stderr = 'Error from server (NotFound): deployments.apps "api" not found'
        assert classify(1, "", stderr) == CommandCondition.NOT_FOUND

    def test_other_failure(self):
        assert classify(1, "", "error: the server doesn't have a resource type") == CommandCondition.FAILED

    @pytest.mark.parametrize("stderr", [
        'error: exec: "gke-gcloud-auth-plugin": executable file not found in $PATH',
        'error: context "staging" not found',
    ])
    def test_client_side_not_found_is_a_failure(self, stderr):
        assert classify(1, "", stderr) == CommandCondition.FAILED

    def test_result_helpers(self):
        result = CommandResult(["kubectl", "get", "pod", "a b"], 1, "out\n", "err\n", CommandCondition.FAILED)
        assert result.command_line == "kubectl get pod 'a b'"
        assert result.output == "out\nerr"
        assert not result.is_success()
        assert not result.is_not_found()


class TestCommandExecutor:
    def test_run_captures_stdout(self, python):
        result = python.run(["-c", "print('deployment.apps/api configured')"])

        assert result.exit_code == 0
        assert result.is_success()
        assert result.stdout.strip() == "deployment.apps/api configured"
        assert result.args[0] == sys.executable
        assert result.duration >= 0

    def test_run_raises_on_failure(self, python):
        with pytest.raises(ExecutionError) as exc_info:
            python.run(
                ["-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"],
                context=ErrorContext(manifest="kubernetes.yaml", operation="apply"),
            )

        error = exc_info.value
        assert error.result.exit_code == 3
        assert "boom" in error.message
        assert error.context.manifest == "kubernetes.yaml"
        assert sys.executable in error.context.command

    def test_capture_returns_failures(self, python):
        result = python.capture(["-c", "import sys; sys.exit(1)"])
        assert result.exit_code == 1
        assert result.condition == CommandCondition.FAILED

    def test_capture_classifies_not_found(self, python):
        result = python.capture([
            "-c",
            "import sys; sys.stderr.write('Error from server (NotFound): jobs.batch \"x\" not found'); sys.exit(1)",
        ])
        assert result.is_not_found()

    def test_missing_binary_raises_execution_error(self, tmp_path):
        executor = CommandExecutor(binary=str(tmp_path / "no-such-kubectl"))

        with pytest.raises(ExecutionError) as exc_info:
            executor.run(["version"])

        assert exc_info.value.result is None
        assert isinstance(exc_info.value.cause, FileNotFoundError)

    def test_cancelled_token_prevents_start(self, python):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(OperationCancelledError):
            python.run(["-c", "print('never')"], token)

    def test_cancellation_terminates_child(self, python):
        token = CancellationToken()
        timer = threading.Timer(0.3, token.cancel)
        timer.start()

        start = time.monotonic()
        try:
            with pytest.raises(OperationCancelledError):
                python.capture(["-c", "import time; time.sleep(30)"], token)
        finally:
            timer.cancel()

        assert time.monotonic() - start < 10
