"""Lock-guarded holder for the task currently in flight.

WHY: The long-recording workflow and a caller-initiated cancel() share one
piece of state: the id of the task being monitored. A bare attribute lets
a cancel land between "is it still mine?" and "download it", so the cancel
is lost or the download runs on a cleared id.

HOW: InFlightTask wraps the id in a threading.Lock. Each method is one
critical section, so compound steps (read-and-clear, compare-and-clear)
are atomic whether cancel() comes from another coroutine or another thread.

RULES:
- Every read and write of the id holds self._lock
- take() and claim() are the only ways the workflow and cancel() retire an id
- Methods never block on I/O while holding the lock
"""

from __future__ import annotations

import threading
from typing import Optional


class InFlightTask:
    """Holds at most one in-flight task id."""

    def __init__(self) -> None:
        self._task_id: Optional[str] = None
        self._lock = threading.Lock()

    def set(self, task_id: str) -> None:
        with self._lock:
            self._task_id = task_id

    def get(self) -> Optional[str]:
        with self._lock:
            return self._task_id

    def is_current(self, task_id: str) -> bool:
        with self._lock:
            return self._task_id == task_id

    def adopt(self, task_id: str) -> bool:
        """Make task_id current if nothing is in flight.

        Returns True when task_id is (now) the in-flight task, False when a
        different task holds the cell.
        """
        with self._lock:
            if self._task_id is None:
                self._task_id = task_id
            return self._task_id == task_id

    def take(self) -> Optional[str]:
        """Clear the id and return what it was (None if nothing was in flight)."""
        with self._lock:
            task_id, self._task_id = self._task_id, None
            return task_id

    def clear_if(self, task_id: str) -> None:
        """Clear the id only if it still refers to task_id."""
        with self._lock:
            if self._task_id == task_id:
                self._task_id = None

    def claim(self, task_id: str) -> bool:
        """Retire task_id for the caller; False if someone else already did.

        A True result means no later cancel() can observe this task.
        """
        with self._lock:
            if self._task_id != task_id:
                return False
            self._task_id = None
            return True
