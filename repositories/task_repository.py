"""
Task repository.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from repositories.base_repository import InMemoryRepository, paginate

logger = logging.getLogger(__name__)


class TaskRepository(InMemoryRepository):
    table_name = "tasks"

    def create_task(self, task_data: Dict[str, Any]) -> Dict[str, Any]:
        task_data = dict(task_data)
        task_data.setdefault("archived", False)
        task_data.setdefault("report_file", None)
        task_data.setdefault("text_report", None)
        task_data.setdefault("updated_by", None)
        return self._insert(task_data)

    def update_task(self, task_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update(task_id, changes)

    def list_tasks(
        self,
        page: int = 1,
        limit: int = 50,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        assignee_id: Optional[str] = None,
        include_archived: bool = False
    ) -> Tuple[List[Dict[str, Any]], int]:
        def _matches(row: Dict[str, Any]) -> bool:
            if not include_archived and row.get("archived"):
                return False
            if status and row["status"] != status:
                return False
            if priority and row["priority"] != priority:
                return False
            if assignee_id and row.get("assignee_id") != assignee_id:
                return False
            return True

        rows = sorted(self._select(_matches), key=lambda row: row["created_at"], reverse=True)
        return paginate(rows, page, limit), len(rows)
