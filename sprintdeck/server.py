#!/usr/bin/env python3
"""
SprintDeck API Server
---------------------
JSON API over the SQLite store: projects, tasks, membership and users.

Usage:
    sprintdeck-server --db ~/.local/share/sprintdeck/sprintdeck.db
    sprintdeck-server --seed          # load the demo project first

Identity:
    Every /api request carries X-User-Id. When SPRINTDECK_API_KEY is set
    the request must also carry a matching X-API-Key.

API:
    GET/POST          /api/projects
    GET/PUT/DELETE    /api/projects/<id>
    GET/POST          /api/projects/<id>/tasks
    GET/PUT/DELETE    /api/projects/<id>/tasks/<task_id>
    PATCH             /api/projects/<id>/tasks/<task_id>/status
    GET/POST/DELETE   /api/projects/<id>/members
    POST              /api/projects/<id>/invite      { email }
    GET               /api/projects/<id>/assignees
    GET               /api/projects/<id>/my-role
    GET               /api/users
    GET               /health
"""

import hmac
import logging
import os
import sqlite3
from functools import wraps
from pathlib import Path
from typing import Optional

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config, setup_logging
from .errors import ValidationError
from .schema import (
    MEMBERSHIP_MANAGERS,
    MemberRole,
    TaskStatus,
    User,
    validate_project_fields,
    validate_task_fields,
)
from .store import SprintStore

logger = logging.getLogger(__name__)

DEFAULT_DB = Path.home() / ".local" / "share" / "sprintdeck" / "sprintdeck.db"

USER_NOT_ACTIVE = (
    "This user is not active in SprintDeck. The user should sign up first "
    "before you can add them."
)

app = Flask(__name__)


# ── Config ───────────────────────────────────────────────────────────────────

def get_db_path() -> Path:
    env = os.environ.get("SPRINTDECK_DB")
    if env:
        return Path(env).expanduser()
    return DEFAULT_DB


def get_store() -> SprintStore:
    """One store per request; SprintStore opens a connection per call."""
    if "store" not in g:
        g.store = SprintStore(str(get_db_path()))
    return g.store


# ── Auth ─────────────────────────────────────────────────────────────────────

def require_user(f):
    """Decorator: resolve X-User-Id, and check X-API-Key when a secret is set."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = os.environ.get("SPRINTDECK_API_KEY", "")
        if secret:
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, secret):
                code = 401 if not provided else 403
                return jsonify({"error": "Unauthorized"}), code
        user_id = request.headers.get("X-User-Id", "").strip()
        if not user_id:
            return jsonify({"error": "Not authenticated"}), 401
        g.user_id = user_id
        return f(*args, **kwargs)
    return decorated


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def _project_role(project_id: str):
    """(project, role) for the caller; role is None for outsiders."""
    store = get_store()
    project = store.get_project(project_id)
    if not project:
        return None, None
    return project, store.role_for(project_id, g.user_id)


def _not_found():
    return jsonify({"error": "Project not found"}), 404


def _denied():
    return jsonify({"error": "Access denied"}), 403


# ── Error handlers ───────────────────────────────────────────────────────────

@app.errorhandler(ValidationError)
def handle_validation_error(e):
    return jsonify({"error": str(e)}), 400


@app.errorhandler(Exception)
def handle_unexpected(e):
    if isinstance(e, HTTPException):
        return jsonify({"error": e.description}), e.code
    logger.exception(f"Unhandled error on {request.method} {request.path}: {e}")
    return jsonify({"error": "Internal server error"}), 500


# ── Projects ─────────────────────────────────────────────────────────────────

@app.route("/api/projects", methods=["GET"])
@require_user
def api_list_projects():
    projects = get_store().list_projects_for_user(g.user_id)
    return jsonify([p.to_dict() for p in projects])


@app.route("/api/projects", methods=["POST"])
@require_user
def api_create_project():
    data = _body()
    fields = validate_project_fields(data.get("name"), data.get("description"))
    project = get_store().create_project(fields["name"], g.user_id, fields["description"])
    logger.info(f"Project {project.id} created by {g.user_id}")
    return jsonify(project.to_dict()), 201


@app.route("/api/projects/<project_id>", methods=["GET"])
@require_user
def api_get_project(project_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    return jsonify(project.to_dict())


@app.route("/api/projects/<project_id>", methods=["PUT"])
@require_user
def api_update_project(project_id):
    project, role = _project_role(project_id)
    if not project or role is not MemberRole.OWNER:
        return _not_found()
    data = _body()
    fields = validate_project_fields(data.get("name"), data.get("description"))
    project = get_store().update_project(project_id, fields["name"], fields["description"])
    return jsonify(project.to_dict())


@app.route("/api/projects/<project_id>", methods=["DELETE"])
@require_user
def api_delete_project(project_id):
    project, role = _project_role(project_id)
    if not project or role is not MemberRole.OWNER:
        return _not_found()
    get_store().delete_project(project_id)
    logger.info(f"Project {project_id} deleted by {g.user_id}")
    return jsonify({"message": "Project deleted successfully"})


# ── Tasks ────────────────────────────────────────────────────────────────────

@app.route("/api/projects/<project_id>/tasks", methods=["GET"])
@require_user
def api_list_tasks(project_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    return jsonify([t.to_dict() for t in get_store().list_tasks(project_id)])


@app.route("/api/projects/<project_id>/tasks", methods=["POST"])
@require_user
def api_create_task(project_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    data = _body()
    fields = validate_task_fields(
        data.get("title"),
        data.get("description"),
        data.get("status") or TaskStatus.TODO.value,
        data.get("priority") or "MEDIUM",
    )
    task = get_store().create_task(
        project_id,
        fields["title"],
        description=fields["description"],
        status=fields["status"],
        priority=fields["priority"],
        assignee_id=data.get("assigneeId") or None,
    )
    return jsonify(task.to_dict()), 201


@app.route("/api/projects/<project_id>/tasks/<task_id>", methods=["GET"])
@require_user
def api_get_task(project_id, task_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    task = get_store().get_task(project_id, task_id)
    if not task:
        return jsonify({"error": "Task not found"}), 404
    return jsonify(task.to_dict())


@app.route("/api/projects/<project_id>/tasks/<task_id>", methods=["PUT"])
@require_user
def api_update_task(project_id, task_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    store = get_store()
    existing = store.get_task(project_id, task_id)
    if not existing:
        return jsonify({"error": "Task not found"}), 404

    data = _body()
    fields = validate_task_fields(
        data.get("title"),
        data.get("description"),
        data.get("status") or existing.status.value,
        data.get("priority") or existing.priority.value,
    )
    fields["assigneeId"] = data.get("assigneeId") or None
    task = store.update_task(project_id, task_id, fields)
    return jsonify(task.to_dict())


@app.route("/api/projects/<project_id>/tasks/<task_id>/status", methods=["PATCH"])
@require_user
def api_update_task_status(project_id, task_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    status = _body().get("status")
    try:
        status = TaskStatus(status).value
    except ValueError:
        return jsonify({
            "error": "Invalid status. Must be one of: " + ", ".join(s.value for s in TaskStatus)
        }), 400
    task = get_store().update_task_status(project_id, task_id, status)
    if not task:
        return jsonify({"error": "Task not found"}), 404
    logger.info(f"Task {task_id} moved to {status} by {g.user_id}")
    return jsonify(task.to_dict())


@app.route("/api/projects/<project_id>/tasks/<task_id>", methods=["DELETE"])
@require_user
def api_delete_task(project_id, task_id):
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    if not get_store().delete_task(project_id, task_id):
        return jsonify({"error": "Task not found"}), 404
    return jsonify({"message": "Task deleted successfully"})


# ── Membership ───────────────────────────────────────────────────────────────

@app.route("/api/projects/<project_id>/members", methods=["GET"])
@require_user
def api_list_members(project_id):
    """Members as user records, each carrying its membership role."""
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    store = get_store()
    members = []
    for m in store.list_members(project_id):
        user = store.get_user(m.user_id) or User(id=m.user_id, email="")
        members.append({**user.to_dict(), "role": m.role.value})
    return jsonify(members)


@app.route("/api/projects/<project_id>/members", methods=["POST"])
@require_user
def api_add_member(project_id):
    project, role = _project_role(project_id)
    if not project:
        return _not_found()
    if role not in MEMBERSHIP_MANAGERS:
        return _denied()
    data = _body()
    user_id = (data.get("userId") or "").strip()
    if not user_id:
        return jsonify({"error": "userId is required"}), 400
    return _add_member(project, user_id, MemberRole.from_str(data.get("role") or "MEMBER"),
                       "User added to project successfully")


@app.route("/api/projects/<project_id>/members", methods=["DELETE"])
@require_user
def api_remove_member(project_id):
    project, role = _project_role(project_id)
    if not project:
        return _not_found()
    if role not in MEMBERSHIP_MANAGERS:
        return _denied()
    user_id = (_body().get("userId") or "").strip()
    if user_id == project.user_id:
        return jsonify({"error": "Cannot remove project owner"}), 400
    if not get_store().remove_member(project_id, user_id):
        return jsonify({"error": "User is not a member of this project"}), 404
    logger.info(f"User {user_id} removed from project {project_id}")
    return jsonify({"message": "User removed from project successfully"})


@app.route("/api/projects/<project_id>/invite", methods=["POST"])
@require_user
def api_invite(project_id):
    project, role = _project_role(project_id)
    if not project:
        return _not_found()
    if role not in MEMBERSHIP_MANAGERS:
        return _denied()
    email = (_body().get("email") or "").strip()
    if not email:
        return jsonify({"error": "Email is required"}), 400
    user = get_store().find_user_by_email(email)
    if not user:
        return jsonify({"error": "User not found", "message": USER_NOT_ACTIVE}), 404
    return _add_member(project, user.id, MemberRole.MEMBER, "Invitation sent successfully")


def _add_member(project, user_id: str, role: MemberRole, message: str):
    if user_id == project.user_id:
        return jsonify({"error": "User is already a member"}), 400
    try:
        get_store().add_member(project.id, user_id, role)
    except sqlite3.IntegrityError:
        return jsonify({"error": "User is already a member"}), 400
    logger.info(f"User {user_id} joined project {project.id} as {role.value}")
    return jsonify({"message": message})


@app.route("/api/projects/<project_id>/assignees", methods=["GET"])
@require_user
def api_assignees(project_id):
    """Owner plus members, as user records."""
    project, role = _project_role(project_id)
    if not project or role is None:
        return _not_found()
    store = get_store()
    ids = [project.user_id] + [m.user_id for m in store.list_members(project_id)]
    users = [store.get_user(uid) for uid in ids]
    return jsonify([u.to_dict() for u in users if u])


@app.route("/api/projects/<project_id>/my-role", methods=["GET"])
@require_user
def api_my_role(project_id):
    project, role = _project_role(project_id)
    if not project:
        return _not_found()
    if role is None:
        return jsonify({"error": "Not a member of this project"}), 403
    return jsonify({"role": role.value})


# ── Users ────────────────────────────────────────────────────────────────────

@app.route("/api/users", methods=["GET"])
@require_user
def api_users():
    return jsonify([u.to_dict() for u in get_store().list_users()])


@app.route("/health")
def health():
    return jsonify({"status": "ok", "db": str(get_db_path())})


# ── Seed data ────────────────────────────────────────────────────────────────

DEMO_USER = User(id="demo-user-id", email="demo@sprintdeck.dev", name="Demo User")


def seed_demo(store: SprintStore) -> Optional[str]:
    """Load the demo project unless it already exists. Returns its id when created."""
    store.upsert_user(DEMO_USER)
    if store.get_project("demo-project"):
        return None
    store.create_project(
        "Demo Project", DEMO_USER.id,
        description="A sample project to get started",
        project_id="demo-project",
    )
    store.create_task("demo-project", "Set up project structure",
                      description="Initialize the basic project structure",
                      status="DONE", priority="HIGH",
                      assignee_id=DEMO_USER.id, task_id="task-1")
    store.create_task("demo-project", "Configure authentication",
                      description="Set up authentication",
                      status="IN_PROGRESS", priority="HIGH",
                      assignee_id=DEMO_USER.id, task_id="task-2")
    store.create_task("demo-project", "Add database models",
                      description="Create the schema and models",
                      status="TODO", priority="MEDIUM", task_id="task-3")
    return "demo-project"


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="SprintDeck API Server")
    parser.add_argument("--config", help="Path to sprintdeck.yaml")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to sprintdeck.db (overrides SPRINTDECK_DB env var)")
    parser.add_argument("--seed", action="store_true", help="Load the demo project")
    args = parser.parse_args(argv)

    cfg = Config.load(args.config)
    setup_logging(cfg.log_level)

    db_path = str(Path(args.db).expanduser()) if args.db else cfg.db_path
    os.environ["SPRINTDECK_DB"] = db_path
    if cfg.api_key:
        os.environ.setdefault("SPRINTDECK_API_KEY", cfg.api_key)

    if args.seed:
        created = seed_demo(SprintStore(db_path))
        logger.info("Seeded demo project" if created else "Demo project already present")

    host = args.host or cfg.host
    port = args.port or cfg.port
    logger.info(f"SprintDeck API on http://{host}:{port} (db: {db_path})")
    app.run(host=host, port=port, debug=False, threaded=True)


if __name__ == "__main__":
    main()
