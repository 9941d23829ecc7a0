"""
HTTP bindings for the SprintDeck JSON API.

Reads raise FetchFailed with a fixed message. Writes raise MutationFailed
carrying the server's ``message`` or ``error`` field when the response body
has one, else a per-operation fallback. Successful responses are returned
as decoded JSON, unchanged.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import FetchFailed, MutationFailed

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


def error_message(response: requests.Response, fallback: str) -> str:
    """Pick the server-provided explanation out of an error response."""
    try:
        body = response.json()
    except ValueError:
        return fallback
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or fallback
    return fallback


class ApiClient:
    """Thin requests wrapper carrying identity headers and a base URL."""

    def __init__(
        self,
        base_url: str,
        user_id: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if user_id:
            self.session.headers["X-User-Id"] = user_id
        if api_key:
            self.session.headers["X-API-Key"] = api_key

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def read(self, path: str, fallback: str = "Failed to fetch") -> Any:
        """GET ``path``; any non-2xx or transport error becomes FetchFailed."""
        try:
            r = self.session.request("GET", self._url(path), timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"GET {path} failed: {e}")
            raise FetchFailed(fallback) from e
        if not r.ok:
            logger.warning(f"GET {path} -> {r.status_code}")
            raise FetchFailed(fallback)
        return r.json()

    def write(self, method: str, path: str, body: Optional[Dict[str, Any]] = None,
              fallback: str = "Request failed") -> Any:
        """Send a write; non-2xx becomes MutationFailed with the server's message."""
        try:
            r = self.session.request(method, self._url(path), json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise MutationFailed(fallback) from e
        if not r.ok:
            message = error_message(r, fallback)
            logger.warning(f"{method} {path} -> {r.status_code}: {message}")
            raise MutationFailed(message, status=r.status_code)
        return r.json()


class ProjectService:
    """Project endpoints."""

    def __init__(self, api: ApiClient):
        self.api = api

    def fetch_projects(self) -> List[Dict[str, Any]]:
        return self.api.read("/api/projects", "Failed to fetch projects")

    def fetch_project(self, project_id: str) -> Dict[str, Any]:
        return self.api.read(f"/api/projects/{project_id}", "Failed to fetch project")

    def create_project(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.write("POST", "/api/projects", data, "Failed to create project")

    def update_project(self, project_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.write("PUT", f"/api/projects/{project_id}", data, "Failed to update project")

    def delete_project(self, project_id: str) -> Dict[str, Any]:
        return self.api.write("DELETE", f"/api/projects/{project_id}", None, "Failed to delete project")


class TaskService:
    """Task endpoints, scoped by project."""

    def __init__(self, api: ApiClient):
        self.api = api

    @staticmethod
    def _base(project_id: str) -> str:
        return f"/api/projects/{project_id}/tasks"

    def fetch_tasks(self, project_id: str) -> List[Dict[str, Any]]:
        return self.api.read(self._base(project_id), "Failed to fetch tasks")

    def fetch_task(self, project_id: str, task_id: str) -> Dict[str, Any]:
        return self.api.read(f"{self._base(project_id)}/{task_id}", "Failed to fetch task")

    def create_task(self, project_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.write("POST", self._base(project_id), data, "Failed to create task")

    def update_task(self, project_id: str, task_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.api.write("PUT", f"{self._base(project_id)}/{task_id}", data, "Failed to update task")

    def delete_task(self, project_id: str, task_id: str) -> Dict[str, Any]:
        return self.api.write("DELETE", f"{self._base(project_id)}/{task_id}", None, "Failed to delete task")

    def update_task_status(self, project_id: str, task_id: str, status: str) -> Dict[str, Any]:
        return self.api.write(
            "PATCH", f"{self._base(project_id)}/{task_id}/status",
            {"status": status}, "Failed to update task status",
        )


class UserService:
    """Users, membership and invitations."""

    def __init__(self, api: ApiClient):
        self.api = api

    def get_users(self) -> List[Dict[str, Any]]:
        return self.api.read("/api/users", "Failed to fetch users")

    def get_project_assignees(self, project_id: str) -> List[Dict[str, Any]]:
        return self.api.read(f"/api/projects/{project_id}/assignees", "Failed to fetch project assignees")

    def get_project_members(self, project_id: str) -> List[Dict[str, Any]]:
        return self.api.read(f"/api/projects/{project_id}/members", "Failed to fetch project members")

    def get_my_role(self, project_id: str) -> Dict[str, Any]:
        return self.api.read(f"/api/projects/{project_id}/my-role", "Failed to fetch user role")

    def invite_user(self, project_id: str, email: str) -> Dict[str, Any]:
        return self.api.write(
            "POST", f"/api/projects/{project_id}/invite",
            {"email": email}, "Failed to send invitation",
        )

    def add_project_member(self, project_id: str, user_id: str, role: str = "MEMBER") -> Dict[str, Any]:
        return self.api.write(
            "POST", f"/api/projects/{project_id}/members",
            {"userId": user_id, "role": role}, "Failed to add project member",
        )

    def remove_project_member(self, project_id: str, user_id: str) -> Dict[str, Any]:
        return self.api.write(
            "DELETE", f"/api/projects/{project_id}/members",
            {"userId": user_id}, "Failed to remove member",
        )
