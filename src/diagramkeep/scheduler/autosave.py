"""Debounced auto-save of the active diagram using pure asyncio.

States:
- IDLE:   nothing pending
- ARMED:  a timer task is sleeping; every further change replaces it
- FIRING: the persist callback is running

A burst of edits produces exactly one auto-save once the burst settles.
Auto-save only ever updates an existing record: a document that was never
explicitly saved keeps the scheduler idle.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from diagramkeep.session import Session

logger = logging.getLogger(__name__)

DEFAULT_DELAY = 5.0

# Persist callback: returns True when the snapshot was written.
PersistCallback = Callable[[], bool]


class AutoSaveState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRING = "firing"


class AutoSaveScheduler:
    """Cancellable, re-armable debounce timer around a persist callback."""

    def __init__(
        self,
        session: Session,
        persist: PersistCallback,
        delay: float = DEFAULT_DELAY,
        enabled: bool = True,
    ) -> None:
        self._session = session
        self._persist = persist
        self.delay = delay
        self.enabled = enabled
        self._task: asyncio.Task | None = None
        self._state = AutoSaveState.IDLE
        self.saves = 0
        self.failures = 0

    @property
    def state(self) -> AutoSaveState:
        return self._state

    def _should_save(self) -> bool:
        return self._session.has_unsaved_changes and self._session.active_record is not None

    def notify_change(self) -> None:
        """Called after every reconciled update. Re-arms the timer from zero."""
        if not self.enabled or not self._should_save():
            return
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._wait_and_fire())
        self._state = AutoSaveState.ARMED
        logger.debug("Auto-save armed (%.2fs)", self.delay)

    def cancel(self) -> None:
        """Drop any pending auto-save. Safe to call repeatedly."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.debug("Auto-save cancelled")
        if self._state is AutoSaveState.ARMED:
            self._state = AutoSaveState.IDLE

    async def close(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _wait_and_fire(self) -> None:
        await asyncio.sleep(self.delay)
        # A superseded timer must not touch the session.
        if self._task is not asyncio.current_task():
            return
        self._fire()

    def _fire(self) -> None:
        self._state = AutoSaveState.FIRING
        try:
            if not self._should_save():
                logger.debug("Auto-save skipped: nothing to save")
                return
            if self._persist():
                self.saves += 1
            else:
                self.failures += 1
        except Exception as e:
            self.failures += 1
            logger.error("Auto-save failed: %s", e)
        finally:
            self._task = None
            self._state = AutoSaveState.IDLE
