"""Shared test fixtures for SprintDeck tests."""

import pytest

from sprintdeck.store import SprintStore


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "sprintdeck.db")


@pytest.fixture
def store(db_path):
    return SprintStore(db_path)


def make_task(task_id, status="TODO", priority="MEDIUM", title=None, description=None,
              assignee_id=None, created_at="2024-01-01T00:00:00.000Z", project_id="p1"):
    return {
        "id": task_id,
        "title": title or f"Task {task_id}",
        "description": description,
        "status": status,
        "priority": priority,
        "projectId": project_id,
        "assigneeId": assignee_id,
        "createdAt": created_at,
        "updatedAt": created_at,
    }


def make_project(project_id, name, user_id="u1", tasks=None, description=None,
                 created_at="2024-01-01T00:00:00.000Z", updated_at=None):
    return {
        "id": project_id,
        "name": name,
        "description": description,
        "userId": user_id,
        "createdAt": created_at,
        "updatedAt": updated_at or created_at,
        "tasks": tasks or [],
    }
