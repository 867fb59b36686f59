"""Run-scoped cancellation tokens and the job countdown."""

import signal
import threading
from typing import List, Optional

from kube_deploy.utils.logging import get_logger

logger = get_logger(__name__)

TIMEOUT_REASON = "timeout"


class CancellationToken:
    """Thread-safe cancellation signal.

    A token created with a parent is cancelled together with the parent, but
    cancelling the child leaves the parent untouched.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: List["CancellationToken"] = []
        self.reason: Optional[str] = None
        self.parent = parent
        if parent is not None:
            parent._add_child(self)

    def _add_child(self, child: "CancellationToken") -> None:
        with self._lock:
            if not self._event.is_set():
                self._children.append(child)
                return
        child.cancel(self.reason)

    def _remove_child(self, child: "CancellationToken") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def detach(self) -> None:
        """Stop following the parent's cancellation."""
        if self.parent is not None:
            self.parent._remove_child(self)

    def cancel(self, reason: Optional[str] = "cancelled") -> None:
        """Cancel this token and all of its children. Repeated calls are no-ops."""
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            children = list(self._children)
        for child in children:
            child.cancel(reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds; returns True if cancelled meanwhile."""
        return self._event.wait(timeout)


class Countdown:
    """Cancels a child token of ``parent`` once ``seconds`` have elapsed.

    Used as a context manager; the timer is stopped on exit::

        with Countdown(300, run_token) as countdown:
            waiter.wait_for(query, 2, countdown.token)
        if countdown.expired: ...
    """

    def __init__(self, seconds: float, parent: Optional[CancellationToken] = None):
        self.seconds = seconds
        self.token = CancellationToken(parent)
        self._timer = threading.Timer(seconds, self.token.cancel, kwargs={'reason': TIMEOUT_REASON})
        self._timer.daemon = True

    def start(self) -> "Countdown":
        logger.debug(f"Starting countdown of {self.seconds} seconds")
        self._timer.start()
        return self

    def stop(self) -> None:
        self._timer.cancel()
        self.token.detach()

    @property
    def expired(self) -> bool:
        """True only when the countdown itself fired, not on parent cancellation."""
        return self.token.cancelled and self.token.reason == TIMEOUT_REASON

    def __enter__(self) -> "Countdown":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()


def install_signal_handlers(token: CancellationToken) -> None:
    """Cancel ``token`` on SIGTERM and SIGINT.

    Must be called from the main thread.
    """
    def signal_handler(sig, frame):
        name = signal.Signals(sig).name
        logger.warning(f"Received {name}, cancelling run...")
        token.cancel(f"received {name}")

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)
