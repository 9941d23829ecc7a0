"""
Remote data synchronization: cached queries and cache-invalidating mutations.

Every read goes through the QueryCache under a fixed key layout so views
share results. Writes invalidate every key whose contents they could have
changed (project summaries embed task lists, so task writes also
invalidate ("projects",)).

Task status changes are optimistic:
  1. cancel in-flight reads of the project's task list, snapshot it and
     rewrite the moved task's status/updatedAt in place
  2. send the PATCH
  3. on failure or cancellation restore the snapshot verbatim and re-raise
  4. settled (success or failure): invalidate, last
"""
import asyncio
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from .cache import Key, QueryCache
from .client import ApiClient, ProjectService, TaskService, UserService
from .errors import MutationFailed
from .schema import utc_now

logger = logging.getLogger(__name__)


# ── Cache keys ───────────────────────────────────────────────────────────────

def projects_key() -> Key:
    return ("projects",)


def project_key(project_id: str) -> Key:
    return ("projects", project_id)


def tasks_key(project_id: str) -> Key:
    return ("tasks", project_id)


def task_key(project_id: str, task_id: str) -> Key:
    return ("tasks", project_id, task_id)


def users_key() -> Key:
    return ("users",)


def assignees_key(project_id: str) -> Key:
    return ("project-assignees", project_id)


def members_key(project_id: str) -> Key:
    return ("project-members", project_id)


def my_role_key(project_id: str) -> Key:
    return ("my-project-role", project_id)


def with_task_status(task_id: str, status: str, updated_at: str) -> Callable:
    """Cache updater: copy of the task list with one task moved to ``status``."""
    def updater(tasks: Optional[List[Dict[str, Any]]]):
        if tasks is None:
            return None
        return [
            {**t, "status": status, "updatedAt": updated_at} if t.get("id") == task_id else t
            for t in tasks
        ]
    return updater


class DataSync:
    """Binds the API services to a shared QueryCache."""

    def __init__(
        self,
        cache: Optional[QueryCache] = None,
        projects: Optional[ProjectService] = None,
        tasks: Optional[TaskService] = None,
        users: Optional[UserService] = None,
    ):
        self.cache = cache or QueryCache()
        self.projects_api = projects
        self.tasks_api = tasks
        self.users_api = users

    @classmethod
    def from_client(cls, api: ApiClient, cache: Optional[QueryCache] = None) -> "DataSync":
        return cls(cache, ProjectService(api), TaskService(api), UserService(api))

    # ── Queries ──────────────────────────────────────────────────────────────

    async def projects(self, force: bool = False):
        return await self.cache.fetch_query(projects_key(), self.projects_api.fetch_projects, force)

    async def project(self, project_id: str, force: bool = False):
        return await self.cache.fetch_query(
            project_key(project_id), lambda: self.projects_api.fetch_project(project_id), force
        )

    async def tasks(self, project_id: str, force: bool = False):
        return await self.cache.fetch_query(
            tasks_key(project_id), lambda: self.tasks_api.fetch_tasks(project_id), force
        )

    async def task(self, project_id: str, task_id: str, force: bool = False):
        return await self.cache.fetch_query(
            task_key(project_id, task_id),
            lambda: self.tasks_api.fetch_task(project_id, task_id), force,
        )

    async def users(self, force: bool = False):
        return await self.cache.fetch_query(users_key(), self.users_api.get_users, force)

    async def assignees(self, project_id: str, force: bool = False):
        return await self.cache.fetch_query(
            assignees_key(project_id), lambda: self.users_api.get_project_assignees(project_id), force
        )

    async def members(self, project_id: str, force: bool = False):
        return await self.cache.fetch_query(
            members_key(project_id), lambda: self.users_api.get_project_members(project_id), force
        )

    async def my_role(self, project_id: str, force: bool = False):
        return await self.cache.fetch_query(
            my_role_key(project_id), lambda: self.users_api.get_my_role(project_id), force
        )

    # ── Mutation plumbing ────────────────────────────────────────────────────

    def _invalidate(self, keys: Iterable[Key]) -> None:
        for key in keys:
            self.cache.invalidate_queries(key)

    async def _mutate(self, label: str, fn: Callable, *args, invalidate: Iterable[Key] = ()):
        """Run a blocking write off the loop; invalidate only on success."""
        try:
            result = await asyncio.to_thread(fn, *args)
        except MutationFailed as e:
            logger.error(f"Error {label}: {e.message}")
            raise
        self._invalidate(invalidate)
        return result

    async def optimistic_mutation(
        self,
        key: Key,
        updater: Callable,
        call: Callable,
        invalidate: Iterable[Key] = (),
    ):
        """
        Apply ``updater`` to the cached value at ``key`` before running
        ``call`` (a blocking function); restore the snapshot if it raises.
        ``invalidate`` runs after either outcome.
        """
        # Cancelled readers wake after the optimistic write, never before it
        pending = self.cache.cancel_inflight(key)
        snapshot = self.cache.snapshot(key)
        self.cache.set_query_data(key, updater)
        try:
            if pending:
                await asyncio.wait(pending)
            return await asyncio.to_thread(call)
        except BaseException as e:
            # CancelledError too
            snapshot.restore()
            logger.error(f"Optimistic update of {key} rolled back: {e!r}")
            raise
        finally:
            self._invalidate(invalidate)

    # ── Projects ─────────────────────────────────────────────────────────────

    async def create_project(self, data: Dict[str, Any]):
        return await self._mutate(
            "creating project", self.projects_api.create_project, data,
            invalidate=[projects_key()],
        )

    async def update_project(self, project_id: str, data: Dict[str, Any]):
        return await self._mutate(
            "updating project", self.projects_api.update_project, project_id, data,
            invalidate=[projects_key()],
        )

    async def delete_project(self, project_id: str):
        return await self._mutate(
            "deleting project", self.projects_api.delete_project, project_id,
            invalidate=[projects_key()],
        )

    # ── Tasks ────────────────────────────────────────────────────────────────

    async def create_task(self, project_id: str, data: Dict[str, Any]):
        return await self._mutate(
            "creating task", self.tasks_api.create_task, project_id, data,
            invalidate=[tasks_key(project_id), projects_key()],
        )

    async def update_task(self, project_id: str, task_id: str, data: Dict[str, Any]):
        return await self._mutate(
            "updating task", self.tasks_api.update_task, project_id, task_id, data,
            invalidate=[tasks_key(project_id), projects_key()],
        )

    async def delete_task(self, project_id: str, task_id: str):
        return await self._mutate(
            "deleting task", self.tasks_api.delete_task, project_id, task_id,
            invalidate=[tasks_key(project_id), projects_key()],
        )

    async def update_task_status(self, project_id: str, task_id: str, status: str):
        """Move a task to another lane, optimistically."""
        return await self.optimistic_mutation(
            tasks_key(project_id),
            with_task_status(task_id, status, utc_now()),
            lambda: self.tasks_api.update_task_status(project_id, task_id, status),
            invalidate=[tasks_key(project_id), projects_key()],
        )

    # ── Membership ───────────────────────────────────────────────────────────

    def _membership_keys(self, project_id: str) -> List[Key]:
        return [assignees_key(project_id), members_key(project_id), tasks_key(project_id)]

    async def invite_user(self, project_id: str, email: str):
        return await self._mutate(
            "inviting user", self.users_api.invite_user, project_id, email,
            invalidate=self._membership_keys(project_id),
        )

    async def add_member(self, project_id: str, user_id: str, role: str = "MEMBER"):
        return await self._mutate(
            "adding project member", self.users_api.add_project_member, project_id, user_id, role,
            invalidate=self._membership_keys(project_id),
        )

    async def remove_member(self, project_id: str, user_id: str):
        return await self._mutate(
            "removing project member", self.users_api.remove_project_member, project_id, user_id,
            invalidate=self._membership_keys(project_id),
        )
