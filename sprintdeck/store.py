"""
SQLite storage backend for the API server.

Tables: users, projects, tasks, project_members. Deleting a project
cascades to its tasks and membership rows. Membership is unique per
(project, user); the owner never needs a membership row.
"""
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from .schema import (
    MemberRole,
    Priority,
    Project,
    ProjectMember,
    Task,
    TaskStatus,
    User,
    utc_now,
)

logger = logging.getLogger(__name__)


def _connect(db_path: str) -> sqlite3.Connection:
    """Open a connection with FK enforcement and WAL mode."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")
    return conn


def new_id() -> str:
    return uuid.uuid4().hex


class SprintStore:
    """SQLite-backed store for projects, tasks, members and users."""

    def __init__(self, db_path: str = None):
        """Initialize store and create tables if needed."""
        if db_path is None:
            db_path = str(Path.home() / ".local" / "share" / "sprintdeck" / "sprintdeck.db")
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _init_schema(self):
        with _connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE COLLATE NOCASE,
                    name TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    user_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'TODO',
                    priority TEXT NOT NULL DEFAULT 'MEDIUM',
                    project_id TEXT NOT NULL,
                    assignee_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS project_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    role TEXT NOT NULL DEFAULT 'MEMBER',
                    created_at TEXT NOT NULL,
                    UNIQUE (project_id, user_id),
                    FOREIGN KEY (project_id) REFERENCES projects(id) ON DELETE CASCADE
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_projects_owner ON projects(user_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks(project_id, created_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_members_user ON project_members(user_id)")
            conn.commit()

    # ── Users ────────────────────────────────────────────────────────────────

    def upsert_user(self, user: User) -> User:
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO users (id, email, name, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET email=excluded.email, name=excluded.name
            """, (user.id, user.email, user.name, utc_now()))
            conn.commit()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._row_to_user(row) if row else None

    def find_user_by_email(self, email: str) -> Optional[User]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ? COLLATE NOCASE", ((email or "").strip(),)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def list_users(self) -> List[User]:
        with _connect(self.db_path) as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY email").fetchall()
        return [self._row_to_user(r) for r in rows]

    # ── Projects ─────────────────────────────────────────────────────────────

    def create_project(self, name: str, user_id: str, description: Optional[str] = None,
                       project_id: Optional[str] = None) -> Project:
        now = utc_now()
        project = Project(
            id=project_id or new_id(),
            name=name,
            user_id=user_id,
            description=description,
            created_at=now,
            updated_at=now,
        )
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO projects (id, name, description, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (project.id, project.name, project.description, project.user_id,
                  project.created_at, project.updated_at))
            conn.commit()
        return project

    def get_project(self, project_id: str) -> Optional[Project]:
        """Retrieve a project with its tasks."""
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
            if not row:
                return None
            project = self._row_to_project(row)
            project.tasks = self._tasks_for(conn, project_id)
        return project

    def list_projects_for_user(self, user_id: str) -> List[Project]:
        """Projects the user owns or is a member of, most recently updated first."""
        with _connect(self.db_path) as conn:
            rows = conn.execute("""
                SELECT * FROM projects
                WHERE user_id = ?
                   OR id IN (SELECT project_id FROM project_members WHERE user_id = ?)
                ORDER BY updated_at DESC
            """, (user_id, user_id)).fetchall()
            projects = [self._row_to_project(r) for r in rows]
            for p in projects:
                p.tasks = self._tasks_for(conn, p.id)
        return projects

    def update_project(self, project_id: str, name: str, description: Optional[str]) -> Optional[Project]:
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "UPDATE projects SET name = ?, description = ?, updated_at = ? WHERE id = ?",
                (name, description, utc_now(), project_id),
            )
            conn.commit()
        if cur.rowcount == 0:
            return None
        return self.get_project(project_id)

    def delete_project(self, project_id: str) -> bool:
        """Delete a project; tasks and members go with it."""
        with _connect(self.db_path) as conn:
            cur = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
            conn.commit()
        return cur.rowcount > 0

    def role_for(self, project_id: str, user_id: str) -> Optional[MemberRole]:
        """OWNER for the project owner, the membership role for members, else None."""
        with _connect(self.db_path) as conn:
            row = conn.execute("SELECT user_id FROM projects WHERE id = ?", (project_id,)).fetchone()
            if not row:
                return None
            if row["user_id"] == user_id:
                return MemberRole.OWNER
            member = conn.execute(
                "SELECT role FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            ).fetchone()
        return MemberRole.from_str(member["role"]) if member else None

    # ── Tasks ────────────────────────────────────────────────────────────────

    def create_task(self, project_id: str, title: str, description: Optional[str] = None,
                    status: str = TaskStatus.TODO.value, priority: str = Priority.MEDIUM.value,
                    assignee_id: Optional[str] = None, task_id: Optional[str] = None) -> Task:
        now = utc_now()
        task = Task(
            id=task_id or new_id(),
            title=title,
            project_id=project_id,
            description=description,
            status=TaskStatus(status),
            priority=Priority(priority),
            assignee_id=assignee_id,
            created_at=now,
            updated_at=now,
        )
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO tasks (id, title, description, status, priority, project_id,
                                   assignee_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (task.id, task.title, task.description, task.status.value, task.priority.value,
                  task.project_id, task.assignee_id, task.created_at, task.updated_at))
            conn.commit()
        return task

    def get_task(self, project_id: str, task_id: str) -> Optional[Task]:
        """A task, only if it belongs to ``project_id``."""
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND project_id = ?", (task_id, project_id)
            ).fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(self, project_id: str) -> List[Task]:
        with _connect(self.db_path) as conn:
            return self._tasks_for(conn, project_id)

    def update_task(self, project_id: str, task_id: str, fields: Dict[str, Any]) -> Optional[Task]:
        """Update title/description/status/priority/assigneeId. project_id never changes."""
        columns = {
            "title": "title",
            "description": "description",
            "status": "status",
            "priority": "priority",
            "assigneeId": "assignee_id",
        }
        sets = [(columns[k], v) for k, v in fields.items() if k in columns]
        if not sets:
            return self.get_task(project_id, task_id)
        assignments = ", ".join(f"{col} = ?" for col, _ in sets)
        values = [v for _, v in sets] + [utc_now(), task_id, project_id]
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                f"UPDATE tasks SET {assignments}, updated_at = ? WHERE id = ? AND project_id = ?",
                values,
            )
            conn.commit()
        if cur.rowcount == 0:
            return None
        return self.get_task(project_id, task_id)

    def update_task_status(self, project_id: str, task_id: str, status: str) -> Optional[Task]:
        return self.update_task(project_id, task_id, {"status": status})

    def delete_task(self, project_id: str, task_id: str) -> bool:
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM tasks WHERE id = ? AND project_id = ?", (task_id, project_id)
            )
            conn.commit()
        return cur.rowcount > 0

    # ── Members ──────────────────────────────────────────────────────────────

    def add_member(self, project_id: str, user_id: str, role: MemberRole = MemberRole.MEMBER) -> ProjectMember:
        """Add a membership row. Raises sqlite3.IntegrityError if it already exists."""
        with _connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO project_members (project_id, user_id, role, created_at)
                VALUES (?, ?, ?, ?)
            """, (project_id, user_id, role.value, utc_now()))
            conn.commit()
        return ProjectMember(project_id=project_id, user_id=user_id, role=role)

    def get_member(self, project_id: str, user_id: str) -> Optional[ProjectMember]:
        with _connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            ).fetchone()
        return self._row_to_member(row) if row else None

    def list_members(self, project_id: str) -> List[ProjectMember]:
        with _connect(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM project_members WHERE project_id = ? ORDER BY id ASC",
                (project_id,),
            ).fetchall()
        return [self._row_to_member(r) for r in rows]

    def remove_member(self, project_id: str, user_id: str) -> bool:
        with _connect(self.db_path) as conn:
            cur = conn.execute(
                "DELETE FROM project_members WHERE project_id = ? AND user_id = ?",
                (project_id, user_id),
            )
            conn.commit()
        return cur.rowcount > 0

    # ── Row mapping ──────────────────────────────────────────────────────────

    def _tasks_for(self, conn: sqlite3.Connection, project_id: str) -> List[Task]:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        ).fetchall()
        return [self._row_to_task(r) for r in rows]

    def _row_to_user(self, row: sqlite3.Row) -> User:
        return User(id=row["id"], email=row["email"], name=row["name"])

    def _row_to_project(self, row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            name=row["name"],
            user_id=row["user_id"],
            description=row["description"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"],
            title=row["title"],
            project_id=row["project_id"],
            description=row["description"],
            status=TaskStatus.from_str(row["status"]),
            priority=Priority.from_str(row["priority"]),
            assignee_id=row["assignee_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _row_to_member(self, row: sqlite3.Row) -> ProjectMember:
        return ProjectMember(
            project_id=row["project_id"],
            user_id=row["user_id"],
            role=MemberRole.from_str(row["role"]),
        )
