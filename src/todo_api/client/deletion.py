"""
Staged deletion with undo.

A deletion is first applied to the view only. The server call is deferred
until the undo window elapses (or the user dismisses the notice); undoing
inside the window puts the item back without any server call. When the
deferred call fails the item is put back and the error is reported.

States::

    VISIBLE -> STAGED -> COMMITTING -> COMMITTED
                 |             |
                 |             +-> FAILED    (item restored)
                 +-> RESTORED                (undo)
"""
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .api import ApiError

logger = logging.getLogger(__name__)

DEFAULT_UNDO_SECONDS = 5.0

Todo = Dict[str, Any]


class DeletionState(str, Enum):
    VISIBLE = "visible"
    STAGED = "staged"
    COMMITTING = "committing"
    COMMITTED = "committed"
    RESTORED = "restored"
    FAILED = "failed"


TERMINAL_STATES = frozenset({DeletionState.COMMITTED, DeletionState.RESTORED, DeletionState.FAILED})


class InvalidTransition(Exception):
    """Raised when a deletion is driven from a state that does not allow the step."""


# PUBLIC_INTERFACE
class StagedDeletion:
    """
    One pending deletion, driven by a cancellable timer.

    Args:
        todo: The item being deleted, as held in the view.
        hide: Removes the item from the view.
        show: Puts the item back into the view.
        delete: Performs the server deletion; raises ApiError on failure.
        window: Seconds before the deletion is committed automatically.
        on_error: Called with the ApiError when the deferred deletion fails.
        on_settled: Called with this deletion once it reaches a terminal state.
    """

    def __init__(
        self,
        todo: Todo,
        hide: Callable[[int], Any],
        show: Callable[[Todo], Any],
        delete: Callable[[int], Any],
        window: float = DEFAULT_UNDO_SECONDS,
        on_error: Optional[Callable[[ApiError], Any]] = None,
        on_settled: Optional[Callable[["StagedDeletion"], Any]] = None,
    ) -> None:
        self.todo = todo
        self.window = window
        self.error: Optional[ApiError] = None
        self._hide = hide
        self._show = show
        self._delete = delete
        self._on_error = on_error
        self._on_settled = on_settled
        self._state = DeletionState.VISIBLE
        self._lock = threading.Lock()
        self._settled = threading.Event()
        self._timer: Optional[threading.Timer] = None

    @property
    def todo_id(self) -> int:
        return int(self.todo["id"])

    @property
    def state(self) -> DeletionState:
        return self._state

    @property
    def pending(self) -> bool:
        return self._state is DeletionState.STAGED

    def stage(self) -> "StagedDeletion":
        """Hide the item and start the undo window."""
        with self._lock:
            if self._state is not DeletionState.VISIBLE:
                raise InvalidTransition(f"cannot stage a deletion that is {self._state.value}")
            self._state = DeletionState.STAGED
            self._hide(self.todo_id)
            self._timer = threading.Timer(self.window, self.commit)
            self._timer.daemon = True
            self._timer.start()
        logger.debug("Staged deletion of todo %s (%.1fs window)", self.todo_id, self.window)
        return self

    def undo(self) -> bool:
        """
        Cancel the deletion and put the item back.

        Returns False when the window has already closed.
        """
        with self._lock:
            if self._state is not DeletionState.STAGED:
                return False
            self._cancel_timer()
            self._state = DeletionState.RESTORED
            self._show(self.todo)
        logger.debug("Undid deletion of todo %s", self.todo_id)
        self._settle()
        return True

    def commit(self) -> bool:
        """
        Issue the server deletion now (timer expiry or dismissal).

        Returns False when the deletion was already undone or committed.
        """
        with self._lock:
            if self._state is not DeletionState.STAGED:
                return False
            self._cancel_timer()
            self._state = DeletionState.COMMITTING

        try:
            self._delete(self.todo_id)
        except ApiError as exc:
            logger.warning("Deferred deletion of todo %s failed: %s", self.todo_id, exc.message)
            with self._lock:
                self.error = exc
                self._state = DeletionState.FAILED
                self._show(self.todo)
            if self._on_error is not None:
                self._on_error(exc)
        else:
            with self._lock:
                self._state = DeletionState.COMMITTED
        self._settle()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the deletion is settled. Returns False on timeout."""
        return self._settled.wait(timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None

    def _settle(self) -> None:
        self._settled.set()
        if self._on_settled is not None:
            self._on_settled(self)


# PUBLIC_INTERFACE
class DeletionQueue:
    """
    Tracks the staged deletions of one store, at most one per item.
    """

    def __init__(self, window: float = DEFAULT_UNDO_SECONDS) -> None:
        self.window = window
        self._lock = threading.Lock()
        self._pending: Dict[int, StagedDeletion] = {}

    def stage(
        self,
        todo: Todo,
        hide: Callable[[int], Any],
        show: Callable[[Todo], Any],
        delete: Callable[[int], Any],
        window: Optional[float] = None,
        on_error: Optional[Callable[[ApiError], Any]] = None,
    ) -> StagedDeletion:
        todo_id = int(todo["id"])
        with self._lock:
            existing = self._pending.get(todo_id)
            if existing is not None and existing.pending:
                return existing
            deletion = StagedDeletion(
                todo,
                hide=hide,
                show=show,
                delete=delete,
                window=self.window if window is None else window,
                on_error=on_error,
                on_settled=self._forget,
            )
            self._pending[todo_id] = deletion
        return deletion.stage()

    def get(self, todo_id: int) -> Optional[StagedDeletion]:
        with self._lock:
            return self._pending.get(todo_id)

    @property
    def pending(self) -> List[StagedDeletion]:
        with self._lock:
            return [d for d in self._pending.values() if d.pending]

    def undo(self, todo_id: int) -> bool:
        deletion = self.get(todo_id)
        return deletion.undo() if deletion is not None else False

    def flush(self) -> None:
        """Commit every pending deletion immediately."""
        for deletion in self.pending:
            deletion.commit()

    def cancel_all(self) -> None:
        """Undo every pending deletion."""
        for deletion in self.pending:
            deletion.undo()

    def _forget(self, deletion: StagedDeletion) -> None:
        with self._lock:
            if self._pending.get(deletion.todo_id) is deletion:
                del self._pending[deletion.todo_id]
