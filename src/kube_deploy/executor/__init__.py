"""Command execution and cancellation."""

from kube_deploy.executor.cancellation import (
    TIMEOUT_REASON,
    CancellationToken,
    Countdown,
    install_signal_handlers,
)
from kube_deploy.executor.command import (
    NOT_FOUND_PATTERN,
    CommandCondition,
    CommandExecutor,
    CommandResult,
    classify,
)

__all__ = [
    # Cancellation
    'TIMEOUT_REASON',
    'CancellationToken',
    'Countdown',
    'install_signal_handlers',

    # Commands
    'NOT_FOUND_PATTERN',
    'CommandCondition',
    'CommandExecutor',
    'CommandResult',
    'classify',
]
