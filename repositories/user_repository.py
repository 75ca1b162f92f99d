"""
User repository.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from repositories.base_repository import InMemoryRepository, paginate

logger = logging.getLogger(__name__)


class UserRepository(InMemoryRepository):
    table_name = "users"

    def create_user(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        user = self._insert(user_data)
        logger.info(f"✅ [USER-REPO] Created user {user['id']}")
        return user

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        email = email.lower()
        matches = self._select(lambda row: row["email"] == email)
        return matches[0] if matches else None

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._update(user_id, changes)

    def list_users(
        self,
        page: int = 1,
        limit: int = 50,
        role: Optional[str] = None,
        search: Optional[str] = None
    ) -> Tuple[List[Dict[str, Any]], int]:
        needle = search.lower() if search else None

        def _matches(row: Dict[str, Any]) -> bool:
            if role and row["role"] != role:
                return False
            if needle:
                haystack = " ".join(
                    str(row.get(field) or "") for field in ("email", "first_name", "last_name", "patronymic")
                ).lower()
                return needle in haystack
            return True

        rows = sorted(self._select(_matches), key=lambda row: row["created_at"], reverse=True)
        return paginate(rows, page, limit), len(rows)

    def list_all(self) -> List[Dict[str, Any]]:
        return sorted(self._select(lambda row: True), key=lambda row: row["created_at"], reverse=True)
