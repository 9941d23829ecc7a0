"""
Filter state records and their reducers.

One store per entity kind (projects, tasks). State only changes through
dispatched actions; reducers are pure functions of (state, action).
"""
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence

from .filters import FILTER_ALL, filter_and_sort_projects, filter_and_sort_tasks

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectFilterState:
    search: str = ""
    owner: str = FILTER_ALL            # ALL | "current" | user id
    sort_by: str = "createdAt"
    sort_order: str = "desc"


@dataclass(frozen=True)
class TaskFilterState:
    search: str = ""
    status: str = FILTER_ALL
    priority: str = FILTER_ALL
    assignee: str = FILTER_ALL         # ALL | "unassigned" | user id
    sort_by: str = "createdAt"
    sort_order: str = "desc"


INITIAL_PROJECT_FILTER_STATE = ProjectFilterState()
INITIAL_TASK_FILTER_STATE = TaskFilterState()


class ActionType(str, Enum):
    SET_SEARCH = "SET_SEARCH"
    SET_OWNER = "SET_OWNER"
    SET_STATUS = "SET_STATUS"
    SET_PRIORITY = "SET_PRIORITY"
    SET_ASSIGNEE = "SET_ASSIGNEE"
    SET_SORT_BY = "SET_SORT_BY"
    SET_SORT_ORDER = "SET_SORT_ORDER"
    RESET_FILTERS = "RESET_FILTERS"


@dataclass(frozen=True)
class FilterAction:
    """A dispatchable action: a type tag plus an optional payload."""
    type: Any
    payload: Any = None


def set_search(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_SEARCH, value)


def set_owner(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_OWNER, value)


def set_status(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_STATUS, value)


def set_priority(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_PRIORITY, value)


def set_assignee(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_ASSIGNEE, value)


def set_sort_by(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_SORT_BY, value)


def set_sort_order(value: str) -> FilterAction:
    return FilterAction(ActionType.SET_SORT_ORDER, value)


def reset_filters() -> FilterAction:
    return FilterAction(ActionType.RESET_FILTERS)


# Action type → state field it replaces
_PROJECT_FIELDS = {
    ActionType.SET_SEARCH: "search",
    ActionType.SET_OWNER: "owner",
    ActionType.SET_SORT_BY: "sort_by",
    ActionType.SET_SORT_ORDER: "sort_order",
}

_TASK_FIELDS = {
    ActionType.SET_SEARCH: "search",
    ActionType.SET_STATUS: "status",
    ActionType.SET_PRIORITY: "priority",
    ActionType.SET_ASSIGNEE: "assignee",
    ActionType.SET_SORT_BY: "sort_by",
    ActionType.SET_SORT_ORDER: "sort_order",
}


def _reduce(state, action: FilterAction, fields: dict, initial):
    if action.type == ActionType.RESET_FILTERS:
        return initial
    name = fields.get(action.type)
    if name is None:
        return state
    return replace(state, **{name: action.payload})


def project_filter_reducer(state: ProjectFilterState, action: FilterAction) -> ProjectFilterState:
    """Apply one action to a project filter state. Unknown actions are no-ops."""
    return _reduce(state, action, _PROJECT_FIELDS, INITIAL_PROJECT_FILTER_STATE)


def task_filter_reducer(state: TaskFilterState, action: FilterAction) -> TaskFilterState:
    """Apply one action to a task filter state. Unknown actions are no-ops."""
    return _reduce(state, action, _TASK_FIELDS, INITIAL_TASK_FILTER_STATE)


# ── Stores ───────────────────────────────────────────────────────────────────

class FilterStore:
    """Holds a filter state and routes dispatched actions through a reducer."""

    def __init__(self, reducer: Callable, initial):
        self._reducer = reducer
        self.state = initial
        self._subscribers: List[Callable] = []

    def dispatch(self, action: FilterAction):
        """Reduce the action into a new state and notify subscribers on change."""
        new_state = self._reducer(self.state, action)
        if new_state is not self.state:
            self.state = new_state
            for callback in list(self._subscribers):
                try:
                    callback(new_state)
                except Exception as e:
                    logger.error(f"Filter subscriber failed: {e}")
        return self.state

    def subscribe(self, callback: Callable) -> Callable[[], None]:
        """Register a state listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)
        return unsubscribe

    def reset(self):
        return self.dispatch(reset_filters())


class ProjectFilterStore(FilterStore):

    def __init__(self, initial: ProjectFilterState = INITIAL_PROJECT_FILTER_STATE):
        super().__init__(project_filter_reducer, initial)

    @property
    def has_active_filters(self) -> bool:
        return bool(self.state.search) or self.state.owner != FILTER_ALL

    def apply(self, projects: Sequence, current_user_id: Optional[str] = None) -> list:
        """The visible, ordered projects for the current state."""
        return filter_and_sort_projects(projects, self.state, current_user_id)


class TaskFilterStore(FilterStore):

    def __init__(self, initial: TaskFilterState = INITIAL_TASK_FILTER_STATE):
        super().__init__(task_filter_reducer, initial)

    @property
    def has_active_filters(self) -> bool:
        s = self.state
        return bool(s.search) or any(
            v != FILTER_ALL for v in (s.status, s.priority, s.assignee)
        )

    def apply(self, tasks: Sequence) -> list:
        """The visible, ordered tasks for the current state."""
        return filter_and_sort_tasks(tasks, self.state)
