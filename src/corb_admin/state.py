from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterator, Optional

from .launcher import ProcessHandle


_ATTEMPTS = itertools.count(1)


class RunStatus(str, Enum):
    """Lifecycle states reported for a run."""

    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @property
    def is_terminal(self) -> bool:
        return self in {RunStatus.COMPLETED, RunStatus.ERROR}


@dataclass(frozen=True)
class RunState:
    """
    Tracker entry for one run.

    ``attempt`` identifies the submission that owns the entry so a late exit
    event from a superseded or cancelled attempt can be recognised and ignored.
    ``handle`` is set only while a phase process is alive; ``exit_code`` is
    the code of the last phase that exited.
    """

    status: RunStatus
    handle: Optional[ProcessHandle] = None
    phase: Optional[str] = None
    exit_code: Optional[int] = None
    attempt: int = field(default_factory=lambda: next(_ATTEMPTS))

    def with_status(self, status: RunStatus) -> "RunState":
        return replace(self, status=status, handle=None)


class RunStateTracker:
    """
    In-memory registry of run id -> :class:`RunState`.

    Each run id has its own lock; callers that read-modify-write an entry hold
    it through :meth:`locked`, so a stop request and a natural exit on the same
    run are serialised while distinct runs never contend.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RunState] = {}
        self._locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, run_id: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(run_id)
            if lock is None:
                lock = self._locks[run_id] = threading.RLock()
            return lock

    @contextmanager
    def locked(self, run_id: str) -> Iterator[None]:
        with self._lock_for(run_id):
            yield

    def get(self, run_id: str) -> Optional[RunState]:
        with self._registry_lock:
            return self._entries.get(run_id)

    def set(self, run_id: str, state: RunState) -> None:
        with self._lock_for(run_id):
            with self._registry_lock:
                self._entries[run_id] = state

    def delete(self, run_id: str) -> Optional[RunState]:
        """Drop the entry and its lock; the id gets a fresh lock if it is used again."""
        with self._lock_for(run_id):
            with self._registry_lock:
                self._locks.pop(run_id, None)
                return self._entries.pop(run_id, None)

    def lock_count(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def __contains__(self, run_id: object) -> bool:
        with self._registry_lock:
            return run_id in self._entries

    def finish(self, run_id: str, attempt: int, status: RunStatus) -> bool:
        """
        Move the entry owned by *attempt* from Running to *status*.

        Returns False, leaving the entry alone, when it is gone, already
        terminal (for example cancelled) or owned by a newer attempt.
        """
        if run_id not in self:
            return False
        with self.locked(run_id):
            current = self.get(run_id)
            if current is None or current.attempt != attempt or current.status is not RunStatus.RUNNING:
                return False
            self.set(run_id, current.with_status(status))
            return True
