"""Server-side dry run and diff of rendered manifests before any mutation."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from kube_deploy.executor.cancellation import CancellationToken
from kube_deploy.executor.command import CommandExecutor, CommandResult
from kube_deploy.render.renderer import RenderedManifest
from kube_deploy.utils.errors import (
    AdvisoryFailure,
    ErrorContext,
    ExecutionError,
    ValidationError,
    error_handler,
)
from kube_deploy.utils.logging import get_logger, LogContext

logger = get_logger(__name__)

# kubectl diff exits 0 without differences and 1 with differences
DIFF_NO_CHANGES = 0
DIFF_HAS_CHANGES = 1


def apply_args(manifest: RenderedManifest, namespace: str) -> List[str]:
    return ["apply", "-f", str(manifest.rendered_path), "-n", namespace]


@dataclass
class ManifestDiff:
    """Diff outcome for one manifest."""

    manifest: str
    result: CommandResult

    @property
    def has_changes(self) -> bool:
        return self.result.exit_code == DIFF_HAS_CHANGES

    @property
    def failed(self) -> bool:
        return self.result.exit_code not in (DIFF_NO_CHANGES, DIFF_HAS_CHANGES)


@dataclass
class ValidationReport:
    """Result of validating a manifest set."""

    validated: List[str] = field(default_factory=list)
    diffs: List[ManifestDiff] = field(default_factory=list)
    advisories: List[AdvisoryFailure] = field(default_factory=list)

    def changed_manifests(self) -> List[str]:
        return [d.manifest for d in self.diffs if d.has_changes]


class ValidationGate:
    """All-or-nothing validation of rendered manifests.

    Every manifest is dry-run against the API server before anything is
    diffed, and nothing is applied unless all of them pass.
    """

    def __init__(self, executor: CommandExecutor):
        self.executor = executor

    def validate(
        self,
        manifests: Sequence[RenderedManifest],
        namespace: str,
        token: Optional[CancellationToken] = None
    ) -> ValidationReport:
        """Dry-run then diff every manifest.

        Raises:
            ValidationError: If any manifest fails the server-side dry run
        """
        report = ValidationReport()

        logger.info("DRYRUN")
        for manifest in manifests:
            self._dry_run(manifest, namespace, token)
            report.validated.append(manifest.source_path)

        logger.info("DIFF")
        for manifest in manifests:
            report.diffs.append(self._diff(manifest, namespace, token, report))

        return report

    def _dry_run(
        self,
        manifest: RenderedManifest,
        namespace: str,
        token: Optional[CancellationToken]
    ) -> None:
        context = ErrorContext(
            manifest=manifest.source_path,
            namespace=namespace,
            operation="dry-run"
        )
        with LogContext(logger, manifest=manifest.source_path, namespace=namespace):
            logger.info(f"Validating manifest '{manifest.source_path}' with a server-side dry run...")
            try:
                self.executor.run(
                    apply_args(manifest, namespace) + ["--dry-run=server"],
                    token,
                    context
                )
            except ExecutionError as e:
                if e.result is None:
                    # the command never ran
                    raise
                raise ValidationError(
                    f"Server-side dry run failed for manifest {manifest.source_path}: {e.message}",
                    result=e.result,
                    context=e.context,
                    cause=e,
                    suggestions=[
                        'No manifest has been applied',
                        'Fix the manifest or its placeholders and run again'
                    ]
                ) from e

    def _diff(
        self,
        manifest: RenderedManifest,
        namespace: str,
        token: Optional[CancellationToken],
        report: ValidationReport
    ) -> ManifestDiff:
        with LogContext(logger, manifest=manifest.source_path, namespace=namespace):
            result = self.executor.capture(
                ["diff", "-f", str(manifest.rendered_path), "-n", namespace],
                token
            )
            diff = ManifestDiff(manifest=manifest.source_path, result=result)

            if result.stdout.strip():
                logger.info(result.stdout.rstrip())

            if diff.failed:
                advisory = AdvisoryFailure(
                    f"Diff failed for manifest {manifest.source_path} (exit code {result.exit_code})",
                    result=result,
                    context=ErrorContext(
                        manifest=manifest.source_path,
                        namespace=namespace,
                        operation="diff",
                        command=result.command_line
                    ),
                    cause=RuntimeError(result.stderr.strip()) if result.stderr.strip() else None
                )
                error_handler.log_error(advisory)
                report.advisories.append(advisory)
            elif diff.has_changes:
                logger.info(f"Manifest '{manifest.source_path}' differs from the live state")
            else:
                logger.info(f"Manifest '{manifest.source_path}' matches the live state")

        return diff
