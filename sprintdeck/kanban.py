"""
Swimlane board: drag/drop gestures turned into status changes.

Gesture lifecycle:
  IDLE → DRAGGING(task_id, source_status) → DROPPED | CANCELLED → IDLE

Dropping a card on the lane it was picked up from issues no write. A
failed status change does not restart the gesture; the board's next
lanes() call reflects the cache rollback done by DataSync.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DragError
from .filters import group_by_status
from .reducers import TaskFilterStore
from .schema import TaskStatus
from .sync import DataSync, tasks_key

logger = logging.getLogger(__name__)

LANES = [s.value for s in TaskStatus]


class DragPhase(Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    DROPPED = "dropped"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class DragGesture:
    """The card being dragged and the lane it was picked up from."""
    task_id: str
    source_status: str


class KanbanBoard:
    """One project's swimlane board."""

    def __init__(self, sync: DataSync, project_id: str, filter_store: Optional[TaskFilterStore] = None):
        self.sync = sync
        self.project_id = project_id
        self.filters = filter_store or TaskFilterStore()
        self.phase = DragPhase.IDLE
        self.gesture: Optional[DragGesture] = None
        self.last_outcome: Optional[DragPhase] = None

    def lanes(self) -> Dict[str, List[Dict[str, Any]]]:
        """Cached tasks, filtered and sorted, grouped into lanes."""
        tasks = self.sync.cache.get_query_data(tasks_key(self.project_id)) or []
        return group_by_status(self.filters.apply(tasks))

    def begin_drag(self, task_id: str, status: str) -> DragGesture:
        """Pick up a card. Only one gesture may be active at a time."""
        if self.phase is not DragPhase.IDLE:
            raise DragError(f"Drag already in progress for {self.gesture.task_id}")
        self.gesture = DragGesture(task_id=task_id, source_status=status)
        self.phase = DragPhase.DRAGGING
        return self.gesture

    def _finish(self, outcome: DragPhase) -> None:
        self.last_outcome = outcome
        self.gesture = None
        self.phase = DragPhase.IDLE

    def cancel(self) -> None:
        """Release outside any lane."""
        if self.phase is not DragPhase.DRAGGING:
            raise DragError("No drag in progress")
        logger.debug(f"Drag of {self.gesture.task_id} cancelled")
        self._finish(DragPhase.CANCELLED)

    async def drop(self, target_status: str):
        """
        Release over a lane. Returns the server's task record, or None when
        no write was issued (same lane, or not a lane at all). Mutation
        errors propagate after the board is back to IDLE.
        """
        if self.phase is not DragPhase.DRAGGING:
            raise DragError("No drag in progress")
        if target_status not in LANES:
            self.cancel()
            return None

        gesture = self.gesture
        self._finish(DragPhase.DROPPED)
        if target_status == gesture.source_status:
            return None

        logger.info(
            f"Moving task {gesture.task_id}: {gesture.source_status} → {target_status}"
        )
        return await self.sync.update_task_status(self.project_id, gesture.task_id, target_status)
