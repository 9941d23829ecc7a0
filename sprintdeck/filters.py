"""
Filter/sort engine for project and task records.

Both entry points are pure: they never mutate the records or the filter
state handed to them and always return a new list. Records are the wire
dicts returned by the API (camelCase keys). Malformed enum values rank 0
and unparseable timestamps sort as the epoch; nothing here raises for
well-formed input.
"""
from datetime import datetime, timezone
from functools import cmp_to_key
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from .schema import TaskStatus

FILTER_ALL = "ALL"
OWNER_CURRENT = "current"
ASSIGNEE_UNASSIGNED = "unassigned"

PRIORITY_RANK = {"URGENT": 4, "HIGH": 3, "MEDIUM": 2, "LOW": 1}
STATUS_RANK = {"TODO": 1, "IN_PROGRESS": 2, "REVIEW": 3, "DONE": 4}

STATUS_DISPLAY_NAMES = {
    "TODO": "To Do",
    "IN_PROGRESS": "In Progress",
    "REVIEW": "Review",
    "DONE": "Done",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Record = Mapping[str, Any]


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp into an aware datetime (naive → UTC)."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (TypeError, ValueError):
            return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _compare(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _sort(records: List[Record], key_fn: Callable[[Record], Any], sort_order: str) -> List[Record]:
    """Three-way sort; descending swaps the operands instead of reversing."""
    keyed = [(key_fn(r), r) for r in records]
    if sort_order == "asc":
        cmp = lambda x, y: _compare(x[0], y[0])
    else:
        cmp = lambda x, y: _compare(y[0], x[0])
    keyed.sort(key=cmp_to_key(cmp))
    return [r for _, r in keyed]


def _matches_search(needle: str, primary: Optional[str], description: Optional[str]) -> bool:
    if needle in (primary or "").casefold():
        return True
    # A null description never matches, it is not treated as ""
    return description is not None and needle in description.casefold()


# ── Projects ─────────────────────────────────────────────────────────────────

def _project_sort_key(sort_by: str) -> Callable[[Record], Any]:
    if sort_by == "name":
        return lambda p: (p.get("name") or "").casefold()
    if sort_by == "updatedAt":
        return lambda p: parse_timestamp(p.get("updatedAt"))
    if sort_by == "taskCount":
        return lambda p: len(p.get("tasks") or [])
    return lambda p: parse_timestamp(p.get("createdAt"))


def filter_and_sort_projects(
    projects: Sequence[Record],
    state: Any,
    current_user_id: Optional[str] = None,
) -> List[Record]:
    """
    Filter projects by search text and owner, then sort.

    ``state.owner`` is ALL, "current" (compared against ``current_user_id``;
    without one no project matches) or a literal user id.
    """
    needle = state.search.casefold() if state.search else ""
    owner = state.owner

    def keep(project: Record) -> bool:
        if needle and not _matches_search(needle, project.get("name"), project.get("description")):
            return False
        if owner != FILTER_ALL:
            wanted = current_user_id if owner == OWNER_CURRENT else owner
            if wanted is None or project.get("userId") != wanted:
                return False
        return True

    filtered = [p for p in projects if keep(p)]
    return _sort(filtered, _project_sort_key(state.sort_by), state.sort_order)


# ── Tasks ────────────────────────────────────────────────────────────────────

def _task_sort_key(sort_by: str) -> Callable[[Record], Any]:
    if sort_by == "title":
        return lambda t: (t.get("title") or "").casefold()
    if sort_by == "updatedAt":
        return lambda t: parse_timestamp(t.get("updatedAt"))
    if sort_by == "priority":
        return lambda t: PRIORITY_RANK.get(t.get("priority"), 0)
    if sort_by == "status":
        return lambda t: STATUS_RANK.get(t.get("status"), 0)
    return lambda t: parse_timestamp(t.get("createdAt"))


def filter_and_sort_tasks(tasks: Sequence[Record], state: Any) -> List[Record]:
    """
    Filter tasks by search text, status, priority and assignee, then sort.

    An assignee filter of "unassigned" selects tasks whose assigneeId is null.
    """
    needle = state.search.casefold() if state.search else ""

    def keep(task: Record) -> bool:
        if needle and not _matches_search(needle, task.get("title"), task.get("description")):
            return False
        if state.status != FILTER_ALL and task.get("status") != state.status:
            return False
        if state.priority != FILTER_ALL and task.get("priority") != state.priority:
            return False
        if state.assignee != FILTER_ALL:
            wanted = None if state.assignee == ASSIGNEE_UNASSIGNED else state.assignee
            if task.get("assigneeId") != wanted:
                return False
        return True

    filtered = [t for t in tasks if keep(t)]
    return _sort(filtered, _task_sort_key(state.sort_by), state.sort_order)


# ── Board helpers ────────────────────────────────────────────────────────────

def group_by_status(tasks: Sequence[Record]) -> Dict[str, List[Record]]:
    """Group tasks into the four lanes, in lane order, keeping input order."""
    lanes: Dict[str, List[Record]] = {s.value: [] for s in TaskStatus}
    for task in tasks:
        lane = lanes.get(task.get("status"))
        if lane is not None:
            lane.append(task)
    return lanes


def status_display_name(status: str) -> str:
    return STATUS_DISPLAY_NAMES.get(status, status)


def assignee_name(assignee_id: Optional[str], assignees: Optional[Sequence[Record]]) -> Optional[str]:
    """Display name for an assignee id, falling back to email."""
    if not assignee_id or not assignees:
        return None
    for a in assignees:
        if a.get("id") == assignee_id:
            return a.get("name") or a.get("email") or None
    return None
