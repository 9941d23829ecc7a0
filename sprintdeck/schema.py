"""
Project and task schema.

Task lifecycle on the board:
  TODO → IN_PROGRESS → REVIEW → DONE

Any lane may be reached from any other lane; the board does not enforce an
order. Wire records use camelCase keys (userId, createdAt, assigneeId, ...)
and are what the client cache holds.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from .errors import ValidationError

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500


def utc_now() -> str:
    """ISO-8601 UTC timestamp with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class TaskStatus(Enum):
    """Swimlanes, in board order."""
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    REVIEW = "REVIEW"
    DONE = "DONE"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.TODO


class Priority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"

    @classmethod
    def from_str(cls, value: str) -> "Priority":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.MEDIUM


class MemberRole(Enum):
    """Project membership roles. The owner holds OWNER implicitly."""
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"

    @classmethod
    def from_str(cls, value: str) -> "MemberRole":
        try:
            return cls[value.upper()]
        except (KeyError, AttributeError):
            return cls.MEMBER


# Roles allowed to change a project's membership (besides the owner)
MEMBERSHIP_MANAGERS = (MemberRole.OWNER, MemberRole.ADMIN)


# ── Validation ───────────────────────────────────────────────────────────────

def _check_text(label: str, value: Any, required: bool, max_length: int) -> Optional[str]:
    if value is None:
        if required:
            raise ValidationError(f"{label} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string")
    value = value.strip()
    if not value:
        if required:
            raise ValidationError(f"{label} is required")
        return None
    if len(value) > max_length:
        raise ValidationError(f"{label} must be at most {max_length} characters")
    return value


def validate_project_fields(name: Any, description: Any = None) -> Dict[str, Optional[str]]:
    """Trim and validate project fields. Empty descriptions become None."""
    return {
        "name": _check_text("Project name", name, True, NAME_MAX_LENGTH),
        "description": _check_text("Description", description, False, DESCRIPTION_MAX_LENGTH),
    }


def validate_task_fields(
    title: Any,
    description: Any = None,
    status: Any = TaskStatus.TODO.value,
    priority: Any = Priority.MEDIUM.value,
) -> Dict[str, Optional[str]]:
    """Trim and validate task fields; status and priority must be enum values."""
    try:
        status = TaskStatus(status).value
    except ValueError:
        raise ValidationError(
            "Invalid status. Must be one of: " + ", ".join(s.value for s in TaskStatus)
        )
    try:
        priority = Priority(priority).value
    except ValueError:
        raise ValidationError(
            "Invalid priority. Must be one of: " + ", ".join(p.value for p in Priority)
        )
    return {
        "title": _check_text("Task title", title, True, NAME_MAX_LENGTH),
        "description": _check_text("Description", description, False, DESCRIPTION_MAX_LENGTH),
        "status": status,
        "priority": priority,
    }


# ── Entities ─────────────────────────────────────────────────────────────────

@dataclass
class User:
    """A user known to the identity provider."""
    id: str
    email: str
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(id=data["id"], email=data.get("email", ""), name=data.get("name"))


@dataclass
class Task:
    """A unit of work inside exactly one project."""
    id: str
    title: str
    project_id: str
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM
    assignee_id: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "projectId": self.project_id,
            "assigneeId": self.assignee_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    def summary(self) -> Dict[str, Any]:
        """Short form embedded in project listings."""
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            project_id=data.get("projectId", ""),
            description=data.get("description"),
            status=TaskStatus.from_str(data.get("status", "TODO")),
            priority=Priority.from_str(data.get("priority", "MEDIUM")),
            assignee_id=data.get("assigneeId"),
            created_at=data.get("createdAt") or utc_now(),
            updated_at=data.get("updatedAt") or utc_now(),
        )


@dataclass
class ProjectMember:
    """Membership row; unique per (project, user)."""
    project_id: str
    user_id: str
    role: MemberRole = MemberRole.MEMBER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "projectId": self.project_id,
            "userId": self.user_id,
            "role": self.role.value,
        }


@dataclass
class Project:
    """A project owned by one user, with tasks and members."""
    id: str
    name: str
    user_id: str
    description: Optional[str] = None
    tasks: List[Task] = field(default_factory=list)
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "userId": self.user_id,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "tasks": [t.summary() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        project_id = data["id"]
        tasks = [
            Task.from_dict({"projectId": project_id, **t})
            for t in data.get("tasks") or []
        ]
        return cls(
            id=project_id,
            name=data.get("name", ""),
            user_id=data.get("userId", ""),
            description=data.get("description"),
            tasks=tasks,
            created_at=data.get("createdAt") or utc_now(),
            updated_at=data.get("updatedAt") or utc_now(),
        )
