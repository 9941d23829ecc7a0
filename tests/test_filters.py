"""
Tests for the filter/sort engine: search, owner/status/priority/assignee
filters, comparator ordering and board grouping.
"""
import copy

from sprintdeck.filters import (
    assignee_name,
    filter_and_sort_projects,
    filter_and_sort_tasks,
    group_by_status,
    parse_timestamp,
    status_display_name,
)
from sprintdeck.reducers import ProjectFilterState, TaskFilterState

from conftest import make_project, make_task


def _names(records):
    return [r["name"] for r in records]


def _titles(records):
    return [r["title"] for r in records]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Projects
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_project_filter_is_pure():
    """Same inputs give the same ids in the same order, inputs untouched"""
    projects = [
        make_project("a", "Alpha", created_at="2024-01-02T00:00:00Z"),
        make_project("b", "Beta", created_at="2024-01-01T00:00:00Z"),
        make_project("c", "Gamma", created_at="2024-01-03T00:00:00Z"),
    ]
    before = copy.deepcopy(projects)
    state = ProjectFilterState(sort_by="name", sort_order="asc")

    first = filter_and_sort_projects(projects, state)
    second = filter_and_sort_projects(projects, state)

    assert [p["id"] for p in first] == [p["id"] for p in second]
    assert projects == before
    assert first is not projects


def test_project_search_is_case_insensitive_substring():
    """'Alpha Team' matches alpha, ALPHA and 'ha Te' but not beta"""
    projects = [make_project("a", "Alpha Team")]
    for term in ("alpha", "ALPHA", "ha Te"):
        assert _names(filter_and_sort_projects(projects, ProjectFilterState(search=term))) == ["Alpha Team"]
    assert filter_and_sort_projects(projects, ProjectFilterState(search="beta")) == []


def test_project_search_matches_description():
    projects = [
        make_project("a", "Alpha", description="Billing rewrite"),
        make_project("b", "Beta"),
    ]
    result = filter_and_sort_projects(projects, ProjectFilterState(search="billing"))
    assert _names(result) == ["Alpha"]


def test_project_sort_by_name_both_directions():
    """Ascending and descending by name"""
    projects = [make_project("g", "Gamma"), make_project("a", "Alpha"), make_project("b", "Beta")]
    asc = filter_and_sort_projects(projects, ProjectFilterState(sort_by="name", sort_order="asc"))
    desc = filter_and_sort_projects(projects, ProjectFilterState(sort_by="name", sort_order="desc"))
    assert _names(asc) == ["Alpha", "Beta", "Gamma"]
    assert _names(desc) == ["Gamma", "Beta", "Alpha"]


def test_owner_filter_and_task_count_sort():
    """owner=u1, taskCount desc over Alpha/Beta/Gamma gives Gamma, Alpha"""
    projects = [
        make_project("a", "Alpha", user_id="u1", tasks=[make_task("t1")]),
        make_project("b", "Beta", user_id="u2", tasks=[]),
        make_project("c", "Gamma", user_id="u1", tasks=[make_task("t2"), make_task("t3")]),
    ]
    state = ProjectFilterState(owner="u1", sort_by="taskCount", sort_order="desc")
    assert _names(filter_and_sort_projects(projects, state)) == ["Gamma", "Alpha"]


def test_owner_current_uses_current_user():
    projects = [make_project("a", "Alpha", user_id="u1"), make_project("b", "Beta", user_id="u2")]
    state = ProjectFilterState(owner="current")
    assert _names(filter_and_sort_projects(projects, state, current_user_id="u2")) == ["Beta"]
    # Without a known current user nothing matches
    assert filter_and_sort_projects(projects, state) == []


def test_default_sort_is_created_at_desc():
    projects = [
        make_project("a", "Old", created_at="2023-05-01T10:00:00.000Z"),
        make_project("b", "New", created_at="2024-05-01T10:00:00.000Z"),
        make_project("c", "Mid", created_at="2024-01-01T10:00:00+00:00"),
    ]
    assert _names(filter_and_sort_projects(projects, ProjectFilterState())) == ["New", "Mid", "Old"]


def test_unknown_sort_key_falls_back_to_created_at():
    projects = [
        make_project("a", "A", created_at="2024-01-01T00:00:00Z"),
        make_project("b", "B", created_at="2024-02-01T00:00:00Z"),
    ]
    state = ProjectFilterState(sort_by="bogus", sort_order="asc")
    assert _names(filter_and_sort_projects(projects, state)) == ["A", "B"]


def test_equal_keys_keep_input_order():
    """Ties keep their relative order in both directions"""
    projects = [make_project(str(i), f"P{i}", tasks=[]) for i in range(4)]
    for order in ("asc", "desc"):
        state = ProjectFilterState(sort_by="taskCount", sort_order=order)
        assert [p["id"] for p in filter_and_sort_projects(projects, state)] == ["0", "1", "2", "3"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tasks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_task_filter_is_pure():
    tasks = [make_task("1", priority="LOW"), make_task("2", priority="HIGH"), make_task("3")]
    before = copy.deepcopy(tasks)
    state = TaskFilterState(sort_by="priority")
    first = filter_and_sort_tasks(tasks, state)
    assert [t["id"] for t in first] == [t["id"] for t in filter_and_sort_tasks(tasks, state)]
    assert tasks == before


def test_null_description_never_matches_search():
    """A null description is excluded, not treated as an empty string"""
    tasks = [make_task("1", title="Write docs", description=None)]
    assert filter_and_sort_tasks(tasks, TaskFilterState(search="x")) == []
    assert filter_and_sort_tasks(tasks, TaskFilterState(search="deploy")) == []
    # Title hits still count
    assert len(filter_and_sort_tasks(tasks, TaskFilterState(search="DOCS"))) == 1


def test_task_search_matches_description():
    tasks = [
        make_task("1", title="A", description="Fix the Login form"),
        make_task("2", title="B", description="other"),
    ]
    assert _titles(filter_and_sort_tasks(tasks, TaskFilterState(search="login"))) == ["A"]


def test_priority_sort_descending():
    """MEDIUM, URGENT, LOW, HIGH desc → URGENT, HIGH, MEDIUM, LOW"""
    tasks = [make_task(p, priority=p) for p in ("MEDIUM", "URGENT", "LOW", "HIGH")]
    result = filter_and_sort_tasks(tasks, TaskFilterState(sort_by="priority", sort_order="desc"))
    assert [t["priority"] for t in result] == ["URGENT", "HIGH", "MEDIUM", "LOW"]


def test_status_sort_ascending_follows_lane_order():
    tasks = [make_task(s, status=s) for s in ("DONE", "TODO", "REVIEW", "IN_PROGRESS")]
    result = filter_and_sort_tasks(tasks, TaskFilterState(sort_by="status", sort_order="asc"))
    assert [t["status"] for t in result] == ["TODO", "IN_PROGRESS", "REVIEW", "DONE"]


def test_unknown_priority_ranks_lowest():
    tasks = [make_task("1", priority="LOW"), make_task("2", priority="???")]
    result = filter_and_sort_tasks(tasks, TaskFilterState(sort_by="priority", sort_order="asc"))
    assert [t["id"] for t in result] == ["2", "1"]


def test_status_priority_and_assignee_filters_combine():
    tasks = [
        make_task("1", status="TODO", priority="HIGH", assignee_id="u1"),
        make_task("2", status="TODO", priority="LOW", assignee_id="u1"),
        make_task("3", status="DONE", priority="HIGH", assignee_id="u1"),
        make_task("4", status="TODO", priority="HIGH", assignee_id="u2"),
    ]
    state = TaskFilterState(status="TODO", priority="HIGH", assignee="u1")
    assert [t["id"] for t in filter_and_sort_tasks(tasks, state)] == ["1"]


def test_unassigned_filter_selects_null_assignee():
    tasks = [make_task("1", assignee_id=None), make_task("2", assignee_id="u1")]
    result = filter_and_sort_tasks(tasks, TaskFilterState(assignee="unassigned"))
    assert [t["id"] for t in result] == ["1"]


def test_title_sort_is_case_insensitive():
    tasks = [make_task("1", title="beta"), make_task("2", title="Alpha"), make_task("3", title="gamma")]
    result = filter_and_sort_tasks(tasks, TaskFilterState(sort_by="title", sort_order="asc"))
    assert _titles(result) == ["Alpha", "beta", "gamma"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Helpers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_group_by_status_has_every_lane():
    tasks = [make_task("1", status="DONE"), make_task("2", status="TODO"), make_task("3", status="DONE")]
    lanes = group_by_status(tasks)
    assert list(lanes) == ["TODO", "IN_PROGRESS", "REVIEW", "DONE"]
    assert [t["id"] for t in lanes["DONE"]] == ["1", "3"]
    assert lanes["REVIEW"] == []


def test_parse_timestamp_variants():
    assert parse_timestamp("2024-01-01T00:00:00Z") == parse_timestamp("2024-01-01T00:00:00+00:00")
    assert parse_timestamp("2024-01-01T00:00:00") == parse_timestamp("2024-01-01T00:00:00Z")
    assert parse_timestamp("garbage").year == 1970
    assert parse_timestamp(None).year == 1970


def test_display_helpers():
    assert status_display_name("IN_PROGRESS") == "In Progress"
    assert status_display_name("WEIRD") == "WEIRD"
    assignees = [{"id": "u1", "name": "Ann", "email": "ann@x.dev"}, {"id": "u2", "name": None, "email": "bo@x.dev"}]
    assert assignee_name("u1", assignees) == "Ann"
    assert assignee_name("u2", assignees) == "bo@x.dev"
    assert assignee_name(None, assignees) is None
    assert assignee_name("u9", assignees) is None
