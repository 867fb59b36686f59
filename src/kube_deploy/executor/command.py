"""Subprocess wrapper around the cluster CLI."""

import re
import shlex
import subprocess
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence

from kube_deploy.executor.cancellation import CancellationToken
from kube_deploy.utils.errors import (
    ErrorContext,
    ExecutionError,
    OperationCancelledError,
    error_handler,
)
from kube_deploy.utils.logging import get_logger

logger = get_logger(__name__)

# kubectl reports missing objects as 'Error from server (NotFound): ... "name" not found'
NOT_FOUND_PATTERN = re.compile(r'\(NotFound\)')


class CommandCondition(Enum):
    """Classified outcome of a command."""
    SUCCEEDED = "succeeded"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class CommandResult:
    """Exit status and captured output of one command."""

    args: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    condition: CommandCondition = CommandCondition.SUCCEEDED
    duration: float = 0.0  # seconds

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def is_success(self) -> bool:
        return self.condition == CommandCondition.SUCCEEDED

    def is_not_found(self) -> bool:
        return self.condition == CommandCondition.NOT_FOUND


def classify(exit_code: int, stdout: str, stderr: str) -> CommandCondition:
    """Map an exit code and output onto a CommandCondition."""
    if exit_code == 0:
        return CommandCondition.SUCCEEDED
    if NOT_FOUND_PATTERN.search(stderr) or NOT_FOUND_PATTERN.search(stdout):
        return CommandCondition.NOT_FOUND
    return CommandCondition.FAILED


class CommandExecutor:
    """Runs the cluster CLI as a child process.

    ``run`` fails fast on a non-zero exit; ``capture`` hands the result back
    for inspection. Both terminate the child promptly when the token is
    cancelled.
    """

    def __init__(
        self,
        binary: str = "kubectl",
        poll_interval: float = 0.1,
        termination_grace: float = 5.0,
        cwd: Optional[str] = None
    ):
        """Initialize command executor.

        Args:
            binary: Executable to invoke
            poll_interval: Seconds between cancellation checks while a child runs
            termination_grace: Seconds to wait after SIGTERM before killing the child
            cwd: Working directory for child processes
        """
        self.binary = binary
        self.poll_interval = poll_interval
        self.termination_grace = termination_grace
        self.cwd = cwd

    def run(
        self,
        args: Sequence[str],
        token: Optional[CancellationToken] = None,
        context: Optional[ErrorContext] = None
    ) -> CommandResult:
        """Run a command and raise if it exits non-zero.

        Raises:
            ExecutionError: If the command fails
            OperationCancelledError: If the token is cancelled
        """
        result = self._execute(args, token, context)

        if result.stdout.strip():
            logger.info(result.stdout.rstrip())

        if not result.is_success():
            context = replace(context or ErrorContext(), command=result.command_line)
            raise ExecutionError(
                f"Command exited with code {result.exit_code}: {result.output or '(no output)'}",
                result=result,
                context=context
            )
        return result

    def capture(
        self,
        args: Sequence[str],
        token: Optional[CancellationToken] = None,
        context: Optional[ErrorContext] = None
    ) -> CommandResult:
        """Run a command and return its result regardless of exit code.

        Raises:
            OperationCancelledError: If the token is cancelled
        """
        result = self._execute(args, token, context)
        logger.debug(
            f"{result.command_line} exited with {result.exit_code} ({result.condition.value})"
        )
        if result.output:
            logger.debug(result.output)
        return result

    def _execute(
        self,
        args: Sequence[str],
        token: Optional[CancellationToken],
        context: Optional[ErrorContext]
    ) -> CommandResult:
        full_args = [self.binary, *args]
        command_line = shlex.join(full_args)
        context = replace(context or ErrorContext(), command=command_line)

        if token is not None and token.cancelled:
            raise OperationCancelledError(
                f"Not starting '{command_line}': run cancelled ({token.reason})",
                context=context
            )

        logger.info(f"Running {command_line}", extra={'command': command_line})
        start = time.monotonic()

        try:
            process = subprocess.Popen(
                full_args,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                text=True,
                cwd=self.cwd
            )
        except OSError as e:
            raise error_handler.handle_exception(e, context) from e

        with process:
            stdout, stderr = self._communicate(process, token, command_line, context)

        duration = time.monotonic() - start
        exit_code = process.returncode
        return CommandResult(
            args=full_args,
            exit_code=exit_code,
            stdout=stdout or "",
            stderr=stderr or "",
            condition=classify(exit_code, stdout or "", stderr or ""),
            duration=duration
        )

    def _communicate(
        self,
        process: subprocess.Popen,
        token: Optional[CancellationToken],
        command_line: str,
        context: ErrorContext
    ):
        if token is None:
            return process.communicate()

        while True:
            try:
                return process.communicate(timeout=self.poll_interval)
            except subprocess.TimeoutExpired:
                if token.cancelled:
                    break

        logger.warning(f"Terminating '{command_line}' (pid {process.pid}): {token.reason}")
        self._terminate(process)
        raise OperationCancelledError(
            f"Command '{command_line}' cancelled ({token.reason})",
            context=context
        )

    def _terminate(self, process: subprocess.Popen) -> None:
        """Stop a child gracefully, killing it if it does not exit in time."""
        process.terminate()
        try:
            process.communicate(timeout=self.termination_grace)
        except subprocess.TimeoutExpired:
            logger.warning(f"Process {process.pid} did not terminate gracefully, forcing kill")
            process.kill()
            process.communicate()
