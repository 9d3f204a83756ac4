from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
import itertools
from pathlib import Path
import threading
import time

from filelock import FileLock, Timeout as FileLockTimeout

from core.backups.errors import OperationCancelledError, OperationInProgressError

_POLL_INTERVAL = 0.05
LOCK_FILE_NAME = ".backupkeeper.lock"


@dataclass(slots=True, eq=False)
class GateTicket:
    operation: str
    number: int
    enqueued_at: float = field(default_factory=time.monotonic)
    granted: bool = False
    abandoned: bool = False


class OperationGate:
    """FIFO lock for mutating backup operations.

    Waiters are served strictly in ``enqueue`` order. The gate is built on
    ``threading`` primitives so callers on different threads or event loops
    share it. With a ``lock_path`` the owner also holds an OS file lock on
    that path, so gates in other processes pointed at the same file exclude
    each other as well.
    """

    def __init__(self, lock_path: Path | None = None) -> None:
        self._condition = threading.Condition()
        self._queue: deque[GateTicket] = deque()
        self._owner: GateTicket | None = None
        self._counter = itertools.count(1)
        self._process_lock = FileLock(str(lock_path), thread_local=False) if lock_path is not None else None
        self._lock_holder: GateTicket | None = None

    @property
    def busy(self) -> bool:
        with self._condition:
            return self._owner is not None

    @property
    def holder(self) -> str | None:
        with self._condition:
            return self._owner.operation if self._owner is not None else None

    @property
    def queued(self) -> int:
        with self._condition:
            return len(self._queue)

    def enqueue(self, operation: str) -> GateTicket:
        with self._condition:
            ticket = GateTicket(operation=operation, number=next(self._counter))
            self._queue.append(ticket)
            return ticket

    def wait(
        self,
        ticket: GateTicket,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        self._wait_turn(ticket, deadline, cancel_event)
        if self._process_lock is not None:
            self._acquire_process_lock(ticket, deadline, cancel_event)

    def _wait_turn(
        self,
        ticket: GateTicket,
        deadline: float | None,
        cancel_event: threading.Event | None,
    ) -> None:
        with self._condition:
            while True:
                if ticket.abandoned:
                    raise OperationCancelledError(ticket.operation)

                if cancel_event is not None and cancel_event.is_set():
                    self._drop(ticket)
                    raise OperationCancelledError(ticket.operation)

                if self._owner is None and self._queue and self._queue[0] is ticket:
                    self._queue.popleft()
                    ticket.granted = True
                    self._owner = ticket
                    return

                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    holder = self._owner.operation if self._owner is not None else None
                    self._drop(ticket)
                    raise OperationInProgressError(
                        ticket.operation, holder, time.monotonic() - ticket.enqueued_at
                    )

                # Cancel events are not tied to the condition, so wake up periodically.
                slice_length = _POLL_INTERVAL if cancel_event is not None else remaining
                if slice_length is not None and remaining is not None:
                    slice_length = min(slice_length, remaining)
                self._condition.wait(slice_length)

    def release(self, ticket: GateTicket) -> None:
        with self._condition:
            if self._owner is not ticket:
                raise RuntimeError(f"gate released by non-owner ticket #{ticket.number}")
            self._owner = None
            ticket.granted = False
            self._release_process_lock(ticket)
            self._condition.notify_all()

    def abandon(self, ticket: GateTicket) -> None:
        with self._condition:
            ticket.abandoned = True
            if self._owner is ticket:
                self._owner = None
                ticket.granted = False
                self._release_process_lock(ticket)
            else:
                self._drop(ticket)
            self._condition.notify_all()

    def _drop(self, ticket: GateTicket) -> None:
        try:
            self._queue.remove(ticket)
        except ValueError:
            pass
        self._condition.notify_all()

    def _acquire_process_lock(
        self,
        ticket: GateTicket,
        deadline: float | None,
        cancel_event: threading.Event | None,
    ) -> None:
        while True:
            if ticket.abandoned:
                raise OperationCancelledError(ticket.operation)

            if cancel_event is not None and cancel_event.is_set():
                self._revoke(ticket)
                raise OperationCancelledError(ticket.operation)

            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                self._revoke(ticket)
                # The holder lives in another process and is unknown here.
                raise OperationInProgressError(ticket.operation, None, time.monotonic() - ticket.enqueued_at)

            slice_length = _POLL_INTERVAL if remaining is None else min(_POLL_INTERVAL, remaining)
            try:
                self._process_lock.acquire(timeout=slice_length, poll_interval=_POLL_INTERVAL / 5)
            except FileLockTimeout:
                continue

            with self._condition:
                if not ticket.abandoned:
                    self._lock_holder = ticket
                    return
            self._process_lock.release()
            raise OperationCancelledError(ticket.operation)

    def _release_process_lock(self, ticket: GateTicket) -> None:
        if self._process_lock is not None and self._lock_holder is ticket:
            self._lock_holder = None
            self._process_lock.release()

    def _revoke(self, ticket: GateTicket) -> None:
        with self._condition:
            if self._owner is ticket:
                self._owner = None
                ticket.granted = False
            self._condition.notify_all()
