"""Main orchestrator that drives a manifest set through validation, apply and rollout."""

import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from kube_deploy.config.models import DeploymentSpec
from kube_deploy.executor.cancellation import CancellationToken, Countdown
from kube_deploy.executor.command import CommandExecutor
from kube_deploy.orchestrator.readiness import (
    JOB_POLL_INTERVAL,
    REPLICA_POLL_INTERVAL,
    JobSucceededCondition,
    ReadinessQuery,
    ReadinessWaiter,
    RolloutCompleteCondition,
    WaitResult,
    ZeroReplicasCondition,
)
from kube_deploy.orchestrator.validation import ValidationGate, ValidationReport, apply_args
from kube_deploy.render.renderer import RenderedManifest, render_manifest
from kube_deploy.utils.errors import (
    DeploymentError,
    ErrorContext,
    JobTimeoutError,
    ValidationError,
    error_handler,
)
from kube_deploy.utils.logging import get_logger, LogContext

logger = get_logger(__name__)


class RunPhase(Enum):
    """Phases of a run, in execution order."""
    RENDER = "render"
    VALIDATE = "validate"
    AWAIT_SCALE_DOWN = "await_scale_down"
    APPLY = "apply"
    ROLLOUT = "rollout"
    JOBS = "jobs"
    DONE = "done"


class ExecutionStatus(Enum):
    """Status of a phase."""
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(Enum):
    """Terminal result of a run."""
    APPLIED = "applied"
    DRY_RUN_COMPLETED = "dry_run_completed"
    VALIDATION_FAILED = "validation_failed"
    TIMEOUT = "timeout"
    FATAL = "fatal"


# Type alias for progress callback
ProgressCallback = Callable[[RunPhase, ExecutionStatus, Optional[str]], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunOutcome:
    """Complete result of one orchestration run."""

    status: RunStatus
    phase: RunPhase
    error: Optional[DeploymentError] = None
    applied_manifests: List[str] = field(default_factory=list)
    validation: Optional[ValidationReport] = None
    wait_results: List[WaitResult] = field(default_factory=list)
    timed_out_jobs: Dict[str, str] = field(default_factory=dict)  # job name -> logs
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: float = 0.0  # seconds

    def is_success(self) -> bool:
        """Check if the run ended without error."""
        return self.status in (RunStatus.APPLIED, RunStatus.DRY_RUN_COMPLETED)

    @property
    def exit_code(self) -> int:
        return 0 if self.is_success() else 1


class DeploymentOrchestrator:
    """Runs the fixed phase sequence for one DeploymentSpec.

    render -> validate -> [stop on dry run] -> [await zero replicas] -> apply
    -> await rollouts -> [await jobs within the job timeout]

    Phases run strictly one after another and every item within a phase is
    handled sequentially. The first fatal error ends the run; applied
    resources are left as they are.
    """

    def __init__(
        self,
        spec: DeploymentSpec,
        executor: Optional[CommandExecutor] = None,
        working_dir: Optional[Union[str, Path]] = None,
        replica_poll_interval: float = REPLICA_POLL_INTERVAL,
        job_poll_interval: float = JOB_POLL_INTERVAL,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """Initialize deployment orchestrator.

        Args:
            spec: Parameters of the run
            executor: Command executor for kubectl
            working_dir: Base directory for relative manifest paths
            replica_poll_interval: Seconds between replica count polls
            job_poll_interval: Seconds between job status polls
            progress_callback: Optional callback notified of phase transitions
        """
        self.spec = spec
        self.executor = executor or CommandExecutor()
        self.working_dir = Path(working_dir) if working_dir else Path.cwd()
        self.replica_poll_interval = replica_poll_interval
        self.job_poll_interval = job_poll_interval
        self.progress_callback = progress_callback

        self.gate = ValidationGate(self.executor)
        self.waiter = ReadinessWaiter(self.executor)
        self.logger = get_logger(__name__)

        self._phase = RunPhase.RENDER

    def run(self, token: Optional[CancellationToken] = None) -> RunOutcome:
        """Execute the run and return its outcome.

        Never raises for deployment failures; they are reported on the outcome.
        The scratch directory holding rendered manifests is removed on every path.
        """
        token = token or CancellationToken()
        outcome = RunOutcome(status=RunStatus.FATAL, phase=RunPhase.RENDER, start_time=_utcnow())

        self.logger.info(
            f"Starting deployment of {len(self.spec.manifests)} manifest(s) "
            f"to namespace '{self.spec.namespace}'"
        )

        try:
            with tempfile.TemporaryDirectory(prefix="rendered-") as scratch_dir:
                outcome.status = self._execute(Path(scratch_dir), token, outcome)
        except ValidationError as e:
            outcome.status = RunStatus.VALIDATION_FAILED
            outcome.error = e
        except JobTimeoutError as e:
            outcome.status = RunStatus.TIMEOUT
            outcome.error = e
            outcome.timed_out_jobs = dict(e.job_logs)
        except DeploymentError as e:
            outcome.status = RunStatus.FATAL
            outcome.error = e
        except Exception as e:
            outcome.status = RunStatus.FATAL
            outcome.error = error_handler.handle_exception(e, ErrorContext(namespace=self.spec.namespace))
            self.logger.exception("Unexpected error during deployment")

        outcome.phase = self._phase
        outcome.end_time = _utcnow()
        outcome.duration = (outcome.end_time - outcome.start_time).total_seconds()

        if outcome.error is not None:
            self._notify(self._phase, ExecutionStatus.FAILED, outcome.error.message)
            error_handler.log_error(outcome.error)
            self.logger.error(
                f"Deployment {outcome.status.value} during {self._phase.value} phase "
                f"after {outcome.duration:.1f}s"
            )
        else:
            self.logger.info(
                f"Deployment {outcome.status.value} in {outcome.duration:.1f}s"
            )

        return outcome

    def render_manifests(self, scratch_dir: Union[str, Path]) -> List[RenderedManifest]:
        """Render every manifest into ``scratch_dir``, in declared order.

        Raises:
            ConfigurationError: If a manifest is missing or unreadable
        """
        return [
            render_manifest(m, self.spec.placeholders, scratch_dir, self.working_dir)
            for m in self.spec.manifests
        ]

    def _execute(
        self,
        scratch_dir: Path,
        token: CancellationToken,
        outcome: RunOutcome
    ) -> RunStatus:
        spec = self.spec

        self._begin(RunPhase.RENDER)
        manifests = self.render_manifests(scratch_dir)
        self._end(RunPhase.RENDER, f"{len(manifests)} manifest(s) rendered")

        self._begin(RunPhase.VALIDATE)
        outcome.validation = self.gate.validate(manifests, spec.namespace, token)
        self._end(RunPhase.VALIDATE, f"{len(outcome.validation.changed_manifests())} manifest(s) changed")

        if spec.dry_run:
            self.logger.info("Dry run requested, not applying manifests")
            for phase in (RunPhase.AWAIT_SCALE_DOWN, RunPhase.APPLY, RunPhase.ROLLOUT, RunPhase.JOBS):
                self._notify(phase, ExecutionStatus.SKIPPED, "dry run")
            self._phase = RunPhase.DONE
            return RunStatus.DRY_RUN_COMPLETED

        if spec.await_zero_replicas and spec.workloads.deployments:
            self._begin(RunPhase.AWAIT_SCALE_DOWN)
            self._await_scale_down(token, outcome)
            self._end(RunPhase.AWAIT_SCALE_DOWN)
        else:
            self._notify(RunPhase.AWAIT_SCALE_DOWN, ExecutionStatus.SKIPPED, None)

        self._begin(RunPhase.APPLY)
        self._apply(manifests, token, outcome)
        self._end(RunPhase.APPLY, f"{len(outcome.applied_manifests)} manifest(s) applied")

        self._begin(RunPhase.ROLLOUT)
        self._await_rollouts(token, outcome)
        self._end(RunPhase.ROLLOUT)

        if spec.job_timeout_seconds > 0 and spec.workloads.jobs:
            self._begin(RunPhase.JOBS)
            self._await_jobs(token, outcome)
            self._end(RunPhase.JOBS)
        else:
            self._notify(RunPhase.JOBS, ExecutionStatus.SKIPPED, None)

        self._phase = RunPhase.DONE
        return RunStatus.APPLIED

    def _await_scale_down(self, token: CancellationToken, outcome: RunOutcome) -> None:
        for deployment in self.spec.workloads.deployments:
            query = ReadinessQuery("deployment", deployment, self.spec.namespace, ZeroReplicasCondition())
            outcome.wait_results.append(
                self.waiter.wait_for(query, self.replica_poll_interval, token)
            )

    def _apply(
        self,
        manifests: List[RenderedManifest],
        token: CancellationToken,
        outcome: RunOutcome
    ) -> None:
        for manifest in manifests:
            with LogContext(self.logger, manifest=manifest.source_path, namespace=self.spec.namespace):
                self.logger.info(f"Applying manifest '{manifest.source_path}'...")
                self.executor.run(
                    apply_args(manifest, self.spec.namespace),
                    token,
                    ErrorContext(
                        manifest=manifest.source_path,
                        namespace=self.spec.namespace,
                        operation="apply"
                    )
                )
            outcome.applied_manifests.append(manifest.source_path)

    def _await_rollouts(self, token: CancellationToken, outcome: RunOutcome) -> None:
        for kind, name in self.spec.workloads.rollout_targets():
            query = ReadinessQuery(kind, name, self.spec.namespace, RolloutCompleteCondition())
            outcome.wait_results.append(
                self.waiter.wait_for(query, self.replica_poll_interval, token)
            )

    def _await_jobs(self, token: CancellationToken, outcome: RunOutcome) -> None:
        timeout = self.spec.job_timeout_seconds
        pending: List[str] = []

        with Countdown(timeout, token) as countdown:
            for job in self.spec.workloads.jobs:
                if countdown.expired:
                    pending.append(job)
                    continue

                query = ReadinessQuery("job", job, self.spec.namespace, JobSucceededCondition())
                result = self.waiter.wait_for(query, self.job_poll_interval, countdown.token)
                outcome.wait_results.append(result)

                if result.timed_out():
                    pending.append(job)
                else:
                    self.logger.info(f"Job '{job}' finished successfully.")

        if not pending:
            return

        job_logs = {job: self._job_logs(job, token) for job in pending}
        raise JobTimeoutError(
            f"Job(s) failed to complete successfully within timeout {timeout} seconds: "
            f"{', '.join(pending)}",
            timeout_seconds=timeout,
            job_logs=job_logs,
            context=ErrorContext(
                resource_kind="job",
                resource_name=pending[0],
                namespace=self.spec.namespace,
                operation="wait",
                additional_info={'timed_out_jobs': pending}
            )
        )

    def _job_logs(self, job: str, token: CancellationToken) -> str:
        """Fetch the logs of a timed-out job for diagnostics."""
        result = self.executor.capture(["logs", f"job/{job}", "-n", self.spec.namespace], token)
        logs = result.output
        if not result.is_success():
            self.logger.warning(f"Failed retrieving logs for job '{job}' (exit code {result.exit_code})")
        self.logger.error(f"Job '{job}' timed-out.\nLogs:\n{logs}")
        return logs

    def _begin(self, phase: RunPhase) -> None:
        self._phase = phase
        self.logger.info(f"{phase.value.upper().replace('_', ' ')}", extra={'phase': phase.value})
        self._notify(phase, ExecutionStatus.IN_PROGRESS, None)

    def _end(self, phase: RunPhase, message: Optional[str] = None) -> None:
        self._notify(phase, ExecutionStatus.SUCCESS, message)

    def _notify(self, phase: RunPhase, status: ExecutionStatus, message: Optional[str]) -> None:
        if self.progress_callback:
            self.progress_callback(phase, status, message)
