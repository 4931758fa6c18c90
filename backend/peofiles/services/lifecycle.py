"""
File lifecycle: Active -> Deleted, with two triggers.

- Explicit delete, confirmed by the user in the UI
- Silent auto-delete, scheduled after a download from the image view

The auto-delete is never shown to the user. It fires once after the delay,
deletes without asking, and only logs if something goes wrong. Pending
timers live in this process only.
"""

import logging
import threading
from typing import Callable, Optional
from peofiles.core.scheduler import ScheduledTask, Timer
from peofiles.storage.base import BlobStore

logger = logging.getLogger(__name__)

AUTO_DELETE_DELAY_SECONDS = 120.0


class LifecycleManager:
    def __init__(self, store: BlobStore, timer: Timer, auto_delete_delay: float = AUTO_DELETE_DELAY_SECONDS):
        self.store = store
        self.timer = timer
        self.auto_delete_delay = auto_delete_delay
        self._lock = threading.Lock()
        self._pending: dict[int, ScheduledTask] = {}

    def delete(self, file_id: int) -> bool:
        """
        Delete a file now. Returns False if there is no such file.

        A pending auto-delete for the same file is dropped.
        """
        self.cancel(file_id)
        return self.store.delete_by_id(file_id)

    def schedule_auto_delete(
        self,
        file_id: int,
        on_deleted: Optional[Callable[[int], None]] = None,
        on_finished: Optional[Callable[[int], None]] = None,
    ) -> ScheduledTask:
        """
        Delete file_id once the delay has passed.

        on_deleted runs only when the timer actually removed the file.
        on_finished runs after every fire, whether the file was deleted,
        already gone, or the delete failed.

        If one is already pending for this file it is kept, so repeated
        downloads do not push the deletion back.
        """
        with self._lock:
            task = self._pending.get(file_id)
            if task is not None and task.active:
                return task
            task = self.timer.call_later(self.auto_delete_delay, self._expire, file_id, on_deleted, on_finished)
            self._pending[file_id] = task
        logger.info(f"Auto-delete scheduled for file {file_id} in {self.auto_delete_delay:g}s")
        return task

    def cancel(self, file_id: int) -> bool:
        with self._lock:
            task = self._pending.pop(file_id, None)
        return task.cancel() if task is not None else False

    def cancel_all(self) -> int:
        with self._lock:
            tasks = list(self._pending.values())
            self._pending.clear()
        return sum(1 for task in tasks if task.cancel())

    def pending_ids(self) -> list[int]:
        with self._lock:
            return [file_id for file_id, task in self._pending.items() if task.active]

    def _expire(
        self,
        file_id: int,
        on_deleted: Optional[Callable[[int], None]],
        on_finished: Optional[Callable[[int], None]] = None,
    ) -> None:
        with self._lock:
            task = self._pending.get(file_id)
            if task is not None and not task.active:
                del self._pending[file_id]

        try:
            self._auto_delete(file_id, on_deleted)
        finally:
            if on_finished is not None:
                self._notify(on_finished, file_id)

    def _auto_delete(self, file_id: int, on_deleted: Optional[Callable[[int], None]]) -> None:
        # Nobody is waiting on this call, failures can only be logged
        try:
            deleted = self.store.delete_by_id(file_id)
        except Exception:
            logger.exception(f"Auto-delete failed for file {file_id}")
            return

        if not deleted:
            logger.info(f"Auto-delete for file {file_id}: already gone")
            return

        logger.info(f"Auto-deleted file {file_id}")
        if on_deleted is not None:
            self._notify(on_deleted, file_id)

    @staticmethod
    def _notify(callback: Callable[[int], None], file_id: int) -> None:
        try:
            callback(file_id)
        except Exception:
            logger.exception(f"Callback after auto-delete of file {file_id} failed")
