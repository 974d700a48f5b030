"""
Manage Queue - Runs install/uninstall/update actions one at a time on a
background daemon thread.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Deque, List, Optional

from common.exceptions import AppActionError, PiAppsError

from .installer import Action, AppManager

logger = logging.getLogger(__name__)


class QueueStatus(Enum):
    WAITING = "waiting"
    IN_PROGRESS = "in-progress"
    SUCCESS = "success"
    FAILURE = "failure"
    DIAGNOSED = "diagnosed"


@dataclass
class QueueItem:
    """One queued action."""
    action: Action
    app: str
    status: QueueStatus = QueueStatus.WAITING
    error: Optional[str] = None
    log_path: Optional[Path] = None

    @property
    def finished(self) -> bool:
        return self.status not in (QueueStatus.WAITING, QueueStatus.IN_PROGRESS)


class ManageQueue:
    """
    FIFO queue of app actions processed by a single worker thread.

    Failures do not stop the queue. An item whose failure log could be
    diagnosed ends as DIAGNOSED, other failures as FAILURE.

    Args:
        manager: AppManager that performs the actions
        on_complete: Called with each item once it has finished
    """

    def __init__(
        self,
        manager: AppManager,
        on_complete: Optional[Callable[[QueueItem], None]] = None,
    ):
        self.manager = manager
        self.on_complete = on_complete
        self._pending: Deque[QueueItem] = deque()
        self._all: List[QueueItem] = []
        self._lock = threading.Lock()
        self._wakeup = threading.Condition(self._lock)
        self._thread: Optional[threading.Thread] = None
        self._stopping = False
        self._busy = False

    def add(self, action: Action, app: str) -> QueueItem:
        """Append an action to the end of the queue."""
        item = QueueItem(action=action, app=app)
        with self._wakeup:
            self._pending.append(item)
            self._all.append(item)
            self._wakeup.notify()
        logger.debug(f"Queued {action.value} {app}")
        return item

    @property
    def items(self) -> List[QueueItem]:
        with self._lock:
            return list(self._all)

    def start(self) -> None:
        """Start the worker thread if it is not already running."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopping = False
            self._thread = threading.Thread(
                target=self._worker, name="pi-apps-queue", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        """Let the current item finish, drop the rest and end the worker."""
        with self._wakeup:
            self._stopping = True
            self._pending.clear()
            self._wakeup.notify_all()
        if self._thread is not None:
            self._thread.join()

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued item has finished.

        Returns:
            True if the queue drained before the timeout.
        """
        with self._wakeup:
            return self._wakeup.wait_for(
                lambda: not self._pending and not self._busy, timeout=timeout
            )

    def _next(self) -> Optional[QueueItem]:
        with self._wakeup:
            while not self._pending and not self._stopping:
                self._wakeup.wait()
            if self._stopping:
                return None
            self._busy = True
            item = self._pending.popleft()
            item.status = QueueStatus.IN_PROGRESS
            return item

    def _worker(self) -> None:
        while True:
            item = self._next()
            if item is None:
                return
            try:
                try:
                    self._process(item)
                except Exception as e:
                    logger.exception(f"Unexpected error while {item.action.gerund} {item.app}")
                    item.error = str(e) or type(e).__name__
                    item.status = QueueStatus.FAILURE
                if self.on_complete:
                    try:
                        self.on_complete(item)
                    except Exception:
                        logger.exception(f"Completion callback failed for {item.app}")
            finally:
                with self._wakeup:
                    self._busy = False
                    self._wakeup.notify_all()

    def _process(self, item: QueueItem) -> None:
        logger.info(f"{item.action.gerund} {item.app}")
        try:
            if item.action == Action.UPDATE:
                self.manager.update(item.app)
            elif item.action == Action.REFRESH:
                self.manager.refresh(item.app)
            else:
                self.manager.manage_app(item.action, item.app)
            item.status = QueueStatus.SUCCESS
        except AppActionError as e:
            item.error = e.message
            item.log_path = Path(e.log_path) if e.log_path else None
            item.status = QueueStatus.DIAGNOSED if e.captions else QueueStatus.FAILURE
        except PiAppsError as e:
            item.error = e.message
            item.status = QueueStatus.FAILURE
        except OSError as e:
            logger.error(f"{item.action.value} {item.app} failed: {e}")
            item.error = str(e)
            item.status = QueueStatus.FAILURE
