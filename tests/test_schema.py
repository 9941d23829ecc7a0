"""
Tests for entity records and field validation.
"""
import pytest

from sprintdeck.errors import ValidationError
from sprintdeck.schema import (
    MemberRole,
    Priority,
    Project,
    Task,
    TaskStatus,
    utc_now,
    validate_project_fields,
    validate_task_fields,
)


def test_enum_parsing_falls_back():
    assert TaskStatus.from_str("review") is TaskStatus.REVIEW
    assert TaskStatus.from_str("bogus") is TaskStatus.TODO
    assert Priority.from_str(None) is Priority.MEDIUM
    assert MemberRole.from_str("admin") is MemberRole.ADMIN


def test_task_wire_format_is_camel_case():
    task = Task(id="t1", title="Ship", project_id="p1", assignee_id="u1")
    data = task.to_dict()
    assert data["projectId"] == "p1"
    assert data["assigneeId"] == "u1"
    assert data["status"] == "TODO"
    assert Task.from_dict(data) == task


def test_project_embeds_summaries():
    project = Project(id="p1", name="Alpha", user_id="u1",
                      tasks=[Task(id="t1", title="A", project_id="p1", status=TaskStatus.DONE)])
    data = project.to_dict()
    assert data["tasks"] == [{"id": "t1", "title": "A", "status": "DONE", "priority": "MEDIUM"}]
    assert Project.from_dict(data).tasks[0].project_id == "p1"


def test_utc_now_format():
    stamp = utc_now()
    assert stamp.endswith("Z")
    assert len(stamp.split(".")[1]) == 4  # "123Z"


def test_validate_project_fields():
    assert validate_project_fields(" Alpha ", "  ") == {"name": "Alpha", "description": None}
    with pytest.raises(ValidationError):
        validate_project_fields(None)
    with pytest.raises(ValidationError):
        validate_project_fields("ok", "d" * 501)


def test_validate_task_fields():
    fields = validate_task_fields("Do it", status="DONE", priority="LOW")
    assert fields["status"] == "DONE"
    assert fields["priority"] == "LOW"
    with pytest.raises(ValidationError, match="Invalid status"):
        validate_task_fields("Do it", status="LATER")
    with pytest.raises(ValidationError, match="Invalid priority"):
        validate_task_fields("Do it", priority="SOMEDAY")
    with pytest.raises(ValidationError, match="Task title is required"):
        validate_task_fields("   ")
