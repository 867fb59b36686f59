"""Orchestrator module for validating, applying and awaiting manifests."""

from kube_deploy.orchestrator.validation import (
    ManifestDiff,
    ValidationGate,
    ValidationReport,
)
from kube_deploy.orchestrator.readiness import (
    JOB_POLL_INTERVAL,
    REPLICA_POLL_INTERVAL,
    JobSucceededCondition,
    ProbeResult,
    ReadinessCondition,
    ReadinessQuery,
    ReadinessWaiter,
    RolloutCompleteCondition,
    WaitResult,
    WaitStatus,
    ZeroReplicasCondition,
)
from kube_deploy.orchestrator.orchestrator import (
    DeploymentOrchestrator,
    ExecutionStatus,
    ProgressCallback,
    RunOutcome,
    RunPhase,
    RunStatus,
)

__all__ = [
    # Validation
    'ManifestDiff',
    'ValidationGate',
    'ValidationReport',

    # Readiness
    'JOB_POLL_INTERVAL',
    'REPLICA_POLL_INTERVAL',
    'JobSucceededCondition',
    'ProbeResult',
    'ReadinessCondition',
    'ReadinessQuery',
    'ReadinessWaiter',
    'RolloutCompleteCondition',
    'WaitResult',
    'WaitStatus',
    'ZeroReplicasCondition',

    # Main orchestrator
    'DeploymentOrchestrator',
    'ExecutionStatus',
    'ProgressCallback',
    'RunOutcome',
    'RunPhase',
    'RunStatus',
]
