"""Polling of workload state until a readiness condition holds."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from kube_deploy.executor.cancellation import TIMEOUT_REASON, CancellationToken, Countdown
from kube_deploy.executor.command import CommandExecutor, CommandResult
from kube_deploy.utils.errors import ErrorContext, ExecutionError, OperationCancelledError
from kube_deploy.utils.logging import get_logger, LogContext

logger = get_logger(__name__)

REPLICA_POLL_INTERVAL = 10.0  # seconds
JOB_POLL_INTERVAL = 2.0  # seconds


class WaitStatus(Enum):
    """Outcome of a readiness wait."""
    SATISFIED = "satisfied"
    ABSENT = "absent"  # resource does not exist and the condition allows that
    TIMED_OUT = "timed_out"


@dataclass
class ProbeResult:
    """What a single poll observed."""

    satisfied: bool
    observed: Optional[str] = None
    absent: bool = False


class ReadinessCondition:
    """Predicate over a resource's observable state.

    Subclasses build the kubectl arguments and interpret a successful result.
    Only conditions with ``allow_absent`` treat a missing resource as satisfied.
    """

    description = "ready"
    allow_absent = False

    def command(self, query: "ReadinessQuery") -> List[str]:
        raise NotImplementedError

    def evaluate(self, query: "ReadinessQuery", result: CommandResult) -> ProbeResult:
        raise NotImplementedError

    def probe(
        self,
        executor: CommandExecutor,
        query: "ReadinessQuery",
        token: Optional[CancellationToken] = None
    ) -> ProbeResult:
        """Run one poll.

        Raises:
            ExecutionError: If the command fails or its output cannot be parsed
        """
        context = query.error_context()
        result = executor.capture(self.command(query), token, context)

        if result.is_not_found() and self.allow_absent:
            return ProbeResult(satisfied=True, absent=True)

        if not result.is_success():
            context.command = result.command_line
            raise ExecutionError(
                f"Failed retrieving state of {query.describe()}: {result.output or '(no output)'}",
                result=result,
                context=context
            )

        return self.evaluate(query, result)

    @staticmethod
    def parse_int(query: "ReadinessQuery", result: CommandResult, field_name: str) -> Optional[int]:
        """Parse an integer jsonpath value; empty output yields None.

        Raises:
            ExecutionError: If the output is not an integer
        """
        raw = result.stdout.strip().strip("'\"").strip()
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError as e:
            context = query.error_context()
            context.command = result.command_line
            raise ExecutionError(
                f"Failed converting {field_name} to integer for {query.describe()}: {raw!r}",
                result=result,
                context=context,
                cause=e,
                suggestions=['Check that the kubectl version is compatible with the cluster']
            ) from e


class ZeroReplicasCondition(ReadinessCondition):
    """Deployment has been scaled to zero replicas; a missing deployment counts as scaled down."""

    description = "scaled to 0 replicas"
    allow_absent = True

    def command(self, query: "ReadinessQuery") -> List[str]:
        return [
            "get", query.kind, query.name, "-n", query.namespace,
            "-o=jsonpath='{.spec.replicas}'"
        ]

    def evaluate(self, query: "ReadinessQuery", result: CommandResult) -> ProbeResult:
        replicas = self.parse_int(query, result, "replicas")
        if replicas is None:
            context = query.error_context()
            context.command = result.command_line
            raise ExecutionError(
                f"Empty replica count returned for {query.describe()}",
                result=result,
                context=context
            )
        return ProbeResult(satisfied=replicas == 0, observed=f"{replicas} replicas")


class RolloutCompleteCondition(ReadinessCondition):
    """``kubectl rollout status`` reports the rollout finished; the command blocks until it does."""

    description = "finish its rollout"

    def command(self, query: "ReadinessQuery") -> List[str]:
        return ["rollout", "status", query.kind, query.name, "-n", query.namespace]

    def evaluate(self, query: "ReadinessQuery", result: CommandResult) -> ProbeResult:
        if result.stdout.strip():
            logger.info(result.stdout.rstrip())
        return ProbeResult(satisfied=True, observed="rollout complete")


class JobSucceededCondition(ReadinessCondition):
    """Job reports at least ``completions`` succeeded pods."""

    description = "finish"

    def __init__(self, completions: int = 1):
        self.completions = completions

    def command(self, query: "ReadinessQuery") -> List[str]:
        return [
            "get", "job", query.name, "-n", query.namespace,
            "-o", "jsonpath='{.status.succeeded}'"
        ]

    def evaluate(self, query: "ReadinessQuery", result: CommandResult) -> ProbeResult:
        succeeded = self.parse_int(query, result, "succeeded count")
        if succeeded is None:
            return ProbeResult(satisfied=False, observed="no succeeded pods yet")
        return ProbeResult(
            satisfied=succeeded >= self.completions,
            observed=f"{succeeded} succeeded"
        )


@dataclass(frozen=True)
class ReadinessQuery:
    """A resource and the condition to wait for."""

    kind: str
    name: str
    namespace: str
    condition: ReadinessCondition

    def describe(self) -> str:
        return f"{self.kind} '{self.name}' in namespace '{self.namespace}'"

    def error_context(self) -> ErrorContext:
        return ErrorContext(
            resource_kind=self.kind,
            resource_name=self.name,
            namespace=self.namespace,
            operation="wait"
        )


@dataclass
class WaitResult:
    """Outcome of waiting on one query."""

    query: ReadinessQuery
    status: WaitStatus
    attempts: int = 0
    observed: Optional[str] = None
    duration: float = 0.0  # seconds

    def is_satisfied(self) -> bool:
        return self.status in (WaitStatus.SATISFIED, WaitStatus.ABSENT)

    def timed_out(self) -> bool:
        return self.status == WaitStatus.TIMED_OUT


class ReadinessWaiter:
    """Polls a query's condition at a fixed interval until it holds or the token stops it.

    A token cancelled by a Countdown ends the wait with TIMED_OUT; any other
    cancellation raises OperationCancelledError.
    """

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    def wait_for(
        self,
        query: ReadinessQuery,
        poll_interval: float,
        token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None
    ) -> WaitResult:
        """Wait until ``query`` is satisfied.

        Args:
            query: Resource and condition to wait for
            poll_interval: Seconds between polls
            token: Cancellation token; a countdown token turns expiry into TIMED_OUT
            timeout: Optional deadline in seconds for this wait alone

        Returns:
            WaitResult

        Raises:
            ExecutionError: If a poll fails or returns malformed output
            OperationCancelledError: If the run is cancelled
        """
        if timeout is None:
            return self._poll(query, poll_interval, token)

        with Countdown(timeout, token) as countdown:
            return self._poll(query, poll_interval, countdown.token)

    def _poll(
        self,
        query: ReadinessQuery,
        poll_interval: float,
        token: Optional[CancellationToken]
    ) -> WaitResult:
        start = time.monotonic()
        attempts = 0
        observed = None

        with LogContext(logger, resource_kind=query.kind, resource_name=query.name,
                        namespace=query.namespace):
            logger.info(f"Waiting for {query.describe()} to {query.condition.description}...")

            while True:
                if token is not None and token.cancelled:
                    return self._stopped(query, token, attempts, observed, start)

                attempts += 1
                try:
                    probe = query.condition.probe(self.executor, query, token)
                except OperationCancelledError:
                    if token is not None and token.reason == TIMEOUT_REASON:
                        return self._stopped(query, token, attempts, observed, start)
                    raise

                observed = probe.observed
                if probe.absent:
                    logger.warning(f"{query.describe()} does not exist yet, no need to wait")
                    return WaitResult(query, WaitStatus.ABSENT, attempts, None,
                                      time.monotonic() - start)

                if probe.satisfied:
                    logger.info(f"{query.describe()} is ready ({observed})")
                    return WaitResult(query, WaitStatus.SATISFIED, attempts, observed,
                                      time.monotonic() - start)

                logger.info(
                    f"{query.describe()} has {observed}; sleeping for {poll_interval:g} seconds"
                )
                if token is not None:
                    token.wait(poll_interval)
                else:
                    time.sleep(poll_interval)

    def _stopped(
        self,
        query: ReadinessQuery,
        token: CancellationToken,
        attempts: int,
        observed: Optional[str],
        start: float
    ) -> WaitResult:
        if token.reason != TIMEOUT_REASON:
            raise OperationCancelledError(
                f"Stopped waiting for {query.describe()}: {token.reason}",
                context=query.error_context()
            )
        logger.error(f"Timed out waiting for {query.describe()} to {query.condition.description}")
        return WaitResult(query, WaitStatus.TIMED_OUT, attempts, observed,
                          time.monotonic() - start)
