"""
Tests for the swimlane board: drag gesture lifecycle and the status
changes it issues.
"""
import asyncio
import copy
from unittest.mock import MagicMock

import pytest

from sprintdeck.errors import DragError, MutationFailed
from sprintdeck.kanban import DragPhase, KanbanBoard
from sprintdeck.reducers import TaskFilterStore, set_priority
from sprintdeck.sync import DataSync, tasks_key

from conftest import make_task


def _board():
    sync = DataSync(projects=MagicMock(), tasks=MagicMock(), users=MagicMock())
    tasks = [
        make_task("t1", status="TODO", priority="HIGH", created_at="2024-01-01T00:00:00Z"),
        make_task("t2", status="TODO", priority="LOW", created_at="2024-01-02T00:00:00Z"),
        make_task("t3", status="DONE", priority="HIGH", created_at="2024-01-03T00:00:00Z"),
    ]
    sync.cache.set_query_data(tasks_key("p1"), tasks)
    return KanbanBoard(sync, "p1"), sync, copy.deepcopy(tasks)


def test_lanes_group_filtered_tasks():
    board, _, _ = _board()
    lanes = board.lanes()
    assert list(lanes) == ["TODO", "IN_PROGRESS", "REVIEW", "DONE"]
    # Default sort is createdAt desc
    assert [t["id"] for t in lanes["TODO"]] == ["t2", "t1"]

    board.filters.dispatch(set_priority("HIGH"))
    assert [t["id"] for t in board.lanes()["TODO"]] == ["t1"]


def test_lanes_empty_without_cached_tasks():
    board = KanbanBoard(DataSync(), "nope", TaskFilterStore())
    assert all(lane == [] for lane in board.lanes().values())


def test_drop_on_same_lane_is_noop():
    """No mutation and no cache change when the card goes back where it was"""
    board, sync, before = _board()
    board.begin_drag("t1", "TODO")

    assert asyncio.run(board.drop("TODO")) is None

    sync.tasks_api.update_task_status.assert_not_called()
    assert sync.cache.get_query_data(tasks_key("p1")) == before
    assert board.phase is DragPhase.IDLE
    assert board.last_outcome is DragPhase.DROPPED


def test_drop_on_other_lane_moves_task():
    board, sync, _ = _board()
    sync.tasks_api.update_task_status.return_value = {"id": "t1", "status": "REVIEW"}
    board.begin_drag("t1", "TODO")

    result = asyncio.run(board.drop("REVIEW"))

    assert result == {"id": "t1", "status": "REVIEW"}
    sync.tasks_api.update_task_status.assert_called_once_with("p1", "t1", "REVIEW")
    assert [t["id"] for t in board.lanes()["REVIEW"]] == ["t1"]
    assert board.phase is DragPhase.IDLE


def test_failed_drop_rolls_back_and_returns_to_idle():
    board, sync, before = _board()
    sync.tasks_api.update_task_status.side_effect = MutationFailed("Failed to update task status")
    board.begin_drag("t3", "DONE")

    with pytest.raises(MutationFailed):
        asyncio.run(board.drop("IN_PROGRESS"))

    assert board.phase is DragPhase.IDLE
    assert board.gesture is None
    assert sync.cache.get_query_data(tasks_key("p1")) == before
    assert [t["id"] for t in board.lanes()["DONE"]] == ["t3"]


def test_drop_outside_lanes_cancels():
    board, sync, _ = _board()
    board.begin_drag("t1", "TODO")
    assert asyncio.run(board.drop("TRASH")) is None
    assert board.last_outcome is DragPhase.CANCELLED
    sync.tasks_api.update_task_status.assert_not_called()


def test_cancel_and_out_of_order_gestures():
    board, _, _ = _board()
    with pytest.raises(DragError):
        board.cancel()
    with pytest.raises(DragError):
        asyncio.run(board.drop("DONE"))

    gesture = board.begin_drag("t1", "TODO")
    assert gesture.task_id == "t1"
    assert board.phase is DragPhase.DRAGGING
    with pytest.raises(DragError):
        board.begin_drag("t2", "TODO")

    board.cancel()
    assert board.phase is DragPhase.IDLE
    assert board.last_outcome is DragPhase.CANCELLED
