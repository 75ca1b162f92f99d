"""
Task management service with real-time notifications.
"""
import logging
import math
from typing import Any, Dict, Optional

from models.task import TaskCreate, TaskUpdate
from repositories.task_repository import TaskRepository
from repositories.user_repository import UserRepository
from services.notification_service import ConnectionRegistry
from utils.exceptions import ClientInputError, NotFoundError, PermissionDeniedError
from utils.jwt_security import TokenClaims

logger = logging.getLogger(__name__)

MANAGER_ROLES = {"ADMIN", "BOSS"}


def is_manager(actor: TokenClaims) -> bool:
    return actor.role in MANAGER_ROLES


class TaskService:
    def __init__(self, tasks: TaskRepository, users: UserRepository, notifications: ConnectionRegistry):
        self.tasks = tasks
        self.users = users
        self.notifications = notifications

    def _require_assignee(self, assignee_id: Optional[str]) -> None:
        if assignee_id and not self.users.exists(assignee_id):
            raise ClientInputError("Assignee does not exist")

    def get_visible_task(self, task_id: str, actor: TokenClaims) -> Dict[str, Any]:
        """Managers see every task; users only see tasks assigned to them."""
        task = self.tasks.get_by_id(task_id)
        if task is None or (not is_manager(actor) and task.get("assignee_id") != actor.sub):
            raise NotFoundError("Task not found")
        return task

    def list_tasks(
        self,
        actor: TokenClaims,
        page: int,
        limit: int,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assignee_id: Optional[str] = None,
        include_archived: bool = False
    ) -> Dict[str, Any]:
        if is_manager(actor):
            if assignee_id:
                self._require_assignee(assignee_id)
        else:
            assignee_id = actor.sub

        rows, total = self.tasks.list_tasks(
            page=page,
            limit=limit,
            status=status,
            priority=priority,
            assignee_id=assignee_id,
            include_archived=include_archived,
        )
        return {
            "tasks": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    async def create_task(self, data: TaskCreate, actor: TokenClaims) -> Dict[str, Any]:
        self._require_assignee(data.assignee_id)
        task = self.tasks.create_task({
            "title": data.title,
            "description": data.description or "",
            "priority": data.priority or "MEDIUM",
            "status": "ASSIGNED",
            "deadline": data.deadline,
            "assignee_id": data.assignee_id,
            "assignee_name": data.assignee_name or "",
            "created_by": actor.sub,
        })
        logger.info(f"✅ [TASKS] {actor.sub} created task {task['id']}")

        await self.notifications.notify_all("task_created", task)
        if task["assignee_id"]:
            await self.notifications.notify_user(task["assignee_id"], "task_assigned", task)
        return task

    async def update_task(self, task_id: str, changes: TaskUpdate, actor: TokenClaims) -> Dict[str, Any]:
        self.get_visible_task(task_id, actor)

        updates = changes.model_dump(exclude_unset=True)
        if "assignee_id" in updates:
            if not is_manager(actor):
                raise PermissionDeniedError("Only managers can reassign tasks")
            self._require_assignee(updates["assignee_id"])
        updates["updated_by"] = actor.sub

        task = self.tasks.update_task(task_id, updates)
        if task is None:
            raise NotFoundError("Task not found")
        await self.notifications.notify_all("task_updated", task)
        return task

    async def delete_task(self, task_id: str, actor: TokenClaims) -> None:
        if not self.tasks.delete(task_id):
            raise NotFoundError("Task not found")
        logger.info(f"🗑️ [TASKS] {actor.sub} deleted task {task_id}")
        await self.notifications.notify_all("task_deleted", {"task_id": task_id})

    async def archive_task(self, task_id: str, actor: TokenClaims) -> Dict[str, Any]:
        task = self.tasks.update_task(task_id, {"archived": True, "updated_by": actor.sub})
        if task is None:
            raise NotFoundError("Task not found")
        await self.notifications.notify_all("task_archived", task)
        return task

    async def attach_report(
        self,
        task_id: str,
        actor: TokenClaims,
        report_file: Optional[Dict[str, Any]] = None,
        text_report: Optional[str] = None
    ) -> Dict[str, Any]:
        """Attach a file or text report and move the task to review."""
        self.get_visible_task(task_id, actor)
        updates: Dict[str, Any] = {"status": "UNDER_REVIEW", "updated_by": actor.sub}
        if report_file is not None:
            updates["report_file"] = report_file
        if text_report:
            updates["text_report"] = text_report

        task = self.tasks.update_task(task_id, updates)
        if task is None:
            raise NotFoundError("Task not found")
        await self.notifications.notify_all("task_report_uploaded", task)
        return task
