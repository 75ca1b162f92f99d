"""
User management service.
"""
import logging
import math
from typing import Any, Dict, List, Optional, Set

from models.user import UserUpdate
from repositories.user_repository import UserRepository
from services.auth_service import public_user
from utils.exceptions import ClientInputError, NotFoundError, PermissionDeniedError
from utils.jwt_security import TokenClaims

logger = logging.getLogger(__name__)

MANAGER_ROLES = {"ADMIN", "BOSS"}


class UserService:
    def __init__(self, users: UserRepository):
        self.users = users

    def list_users(self, page: int, limit: int, role: Optional[str] = None, search: Optional[str] = None) -> Dict[str, Any]:
        rows, total = self.users.list_users(page=page, limit=limit, role=role, search=search)
        return {
            "users": [public_user(row) for row in rows],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }

    def users_with_status(self, online_ids: Set[str]) -> List[Dict[str, Any]]:
        """Every user with an ``is_online`` flag from the live socket registry."""
        return [
            {
                "id": row["id"],
                "first_name": row["first_name"],
                "last_name": row["last_name"],
                "patronymic": row.get("patronymic"),
                "role": row["role"],
                "is_online": row["id"] in online_ids,
            }
            for row in self.users.list_all()
        ]

    def update_user(self, user_id: str, changes: UserUpdate, actor: TokenClaims) -> Dict[str, Any]:
        if actor.sub != user_id and actor.role not in MANAGER_ROLES:
            raise PermissionDeniedError("You can only edit your own profile")

        updates = changes.model_dump(exclude_unset=True)
        if "role" in updates and actor.role != "ADMIN":
            raise PermissionDeniedError("Only administrators can change roles")

        if not self.users.exists(user_id):
            raise NotFoundError("User not found")

        if "email" in updates:
            existing = self.users.get_by_email(updates["email"])
            if existing and existing["id"] != user_id:
                raise ClientInputError("A user with this email already exists")

        user = self.users.update_user(user_id, updates)
        if user is None:
            raise NotFoundError("User not found")
        logger.info(f"[USERS] {actor.sub} updated user {user_id}: {sorted(updates)}")
        return public_user(user)
