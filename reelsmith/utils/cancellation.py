"""
Cancellation Token
One-way flag shared by every stage of a job, with registered cleanup actions
"""

import threading
from typing import Callable, List, Optional

from .exceptions import JobCancelledError
from .logger import get_logger

logger = get_logger()

CleanupAction = Callable[[], None]


class CancellationToken:
    """
    Cooperative cancellation flag for one job.

    Stages call `raise_if_cancelled()` at their boundaries. Long-running
    external work registers a cleanup action (e.g. terminating a child
    process) that runs when the token fires. Safe to use from executor
    threads.
    """

    def __init__(self, job_id: Optional[str] = None):
        self.job_id = job_id
        self._cancelled = False
        self._lock = threading.Lock()
        self._actions: List[CleanupAction] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Fire the token. Returns False if it had already fired."""
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            actions = list(self._actions)
            self._actions.clear()

        for action in actions:
            self._run_action(action)
        return True

    def register(self, action: CleanupAction) -> Callable[[], None]:
        """
        Register a cleanup action for cancellation.

        Runs immediately if the token already fired. Returns a callable that
        unregisters the action.
        """
        with self._lock:
            if not self._cancelled:
                self._actions.append(action)
                return lambda: self._unregister(action)

        self._run_action(action)
        return lambda: None

    def raise_if_cancelled(self):
        if self._cancelled:
            raise JobCancelledError(self.job_id)

    def _unregister(self, action: CleanupAction):
        with self._lock:
            if action in self._actions:
                self._actions.remove(action)

    def _run_action(self, action: CleanupAction):
        try:
            action()
        except Exception as exc:
            logger.warning(f"Cancellation cleanup failed: {exc}")
